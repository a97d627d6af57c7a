"""Path resolution and deduplication for package file selection.

Turns a file reference from the build (an item path plus an optional
``link`` override) into the destination path it takes inside the package,
and the absolute source path it is read from.

Key Concepts:
    FileReference: One item of a content or binary listing.
    SelectionContext: Per-pass settings (source base directory, target
        subdirectory, relocate root); built fresh for every pass.
    DedupSet: Case-insensitive record of source paths already emitted in
        the current run.

Destination policy, in order:
    1. Start from ``link`` when it is not blank, else the item path.
    2. Anchor it to the source base directory and express it relative to
       that directory.
    3. Strip the relocate root when the destination starts with it
       (case-insensitive prefix match).
    4. Prepend the target subdirectory.

Item paths coming from Windows build files may use ``\\`` separators; both
separators are accepted on every platform.

Related Modules:
    - :mod:`shipkit.pack.selection` - Applies these rules per file
    - :mod:`shipkit.pack.filesystem` - ``get_full_path`` / ``get_path_relative_to``
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterator

from shipkit.pack.filesystem import FileSystem


def is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def normalize_separators(path: str) -> str:
    """Rewrite both ``/`` and ``\\`` to the platform separator."""
    return path.replace("\\", os.sep).replace("/", os.sep)


def change_extension(path: str, extension: str) -> str:
    """Replace the last extension of ``path`` (``a/b.ts`` -> ``a/b.js``)."""
    return os.path.splitext(path)[0] + extension


@dataclass(frozen=True)
class FileReference:
    """A file listed by the build.

    Attributes:
        item_spec: Path as listed, absolute or relative to the source base
        link: Optional destination override (``Link`` metadata)
        metadata: Any other item metadata, carried along untouched
    """

    item_spec: str
    link: str | None = None
    metadata: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def parse(cls, line: str) -> FileReference:
        """Parse ``item`` or ``item|link`` list-file syntax."""
        item, _, link = line.partition("|")
        return cls(item_spec=item.strip(), link=link.strip() or None)


@dataclass(frozen=True)
class SelectionContext:
    """Settings for one selection pass.

    Attributes:
        source_base_directory: Directory item paths are relative to
        target_directory: Prefix for every destination (``bin`` for binaries
            of a web application)
        relocate_root: Directory stripped from the front of destinations,
            usually the build output directory
    """

    source_base_directory: str
    target_directory: str = ""
    relocate_root: str = ""


class DedupSet:
    """Source paths already written to the manifest during one run.

    Membership is case-insensitive. A fresh set is created for every
    packaging run and passed explicitly to the selection engine.
    """

    def __init__(self) -> None:
        self._seen: dict[str, str] = {}

    @staticmethod
    def _key(path: str) -> str:
        return path.casefold()

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self._key(path) in self._seen

    def add(self, path: str) -> bool:
        """Record ``path``; False when it was already present."""
        key = self._key(path)
        if key in self._seen:
            return False
        self._seen[key] = path
        return True

    def __len__(self) -> int:
        return len(self._seen)

    def __iter__(self) -> Iterator[str]:
        return iter(self._seen.values())


def strip_relocate_root(destination: str, root: str) -> str:
    """Drop ``root`` from the front of ``destination`` when it is a prefix.

    The comparison ignores case; the returned path is ``destination`` with
    ``len(root)`` characters removed, or ``destination`` unchanged.
    """
    if root and destination[: len(root)].casefold() == root.casefold():
        return destination[len(root):]
    return destination


def relocate_prefix(context: SelectionContext, fs: FileSystem) -> str:
    """The relocate root as a prefix of base-relative destinations.

    An absolute root is re-expressed relative to the source base directory
    and given a trailing separator, so ``/proj/bin/Debug`` becomes
    ``bin/Debug/``. A root equal to the base directory yields no prefix.
    """
    if is_blank(context.relocate_root):
        return ""
    root = normalize_separators(context.relocate_root)
    if os.path.isabs(root):
        root = fs.get_path_relative_to(root, context.source_base_directory)
        if root and not root.endswith(os.sep):
            root += os.sep
    return root


def resolve_destination(
    reference: FileReference,
    context: SelectionContext,
    fs: FileSystem,
    prefix: str | None = None,
) -> str:
    """Destination of ``reference`` inside the package.

    Parameters
    ----------
    prefix
        Precomputed :func:`relocate_prefix`; computed from ``context`` when
        omitted.
    """
    base = context.source_base_directory
    destination = reference.item_spec if is_blank(reference.link) else reference.link
    destination = normalize_separators(destination)

    if not os.path.isabs(destination):
        destination = fs.get_full_path(os.path.join(base, destination))
    destination = fs.get_path_relative_to(destination, base)

    if prefix is None:
        prefix = relocate_prefix(context, fs)
    destination = strip_relocate_root(destination, prefix)

    return os.path.join(context.target_directory, destination)


def resolve_source(reference: FileReference, context: SelectionContext, fs: FileSystem) -> str:
    """Absolute, canonical on-disk path of ``reference``."""
    return fs.get_full_path(
        os.path.join(context.source_base_directory, normalize_separators(reference.item_spec))
    )
