"""File selection engine for shipkit.

Decides which of the build's files go into the package and where, and
writes the accepted ones into the manifest.

Why This Matters:
    A web application package must carry its content files at the root and
    its binaries under ``bin``; a console application or service only needs
    its binaries. Build listings overlap (a file can be both content and
    output), contain files that were never generated, and include the
    build-time ``app.config`` that must not ship under that name. Getting
    any of this wrong produces a package that deploys but does not run.

Key Concepts:
    ApplicationShape: CONTENT when a ``web.config`` sits in the project root,
        BINARY otherwise.
    SelectionOptions: Caller flags that change per-file handling.
    FileSelector: Runs selection passes against one manifest and one
        ``DedupSet``; ``select()`` is the top-level policy and merge gate.

Per-file rules, applied after path resolution, existence and dedup checks:
    1. Configuration substitution: the file named like the configuration
       target is never added as-is; the replacement file is added in its
       place when one is configured and exists.
    2. Deployment scripts outside the package root produce a warning.
    3. ``.ts`` sources are added only on request; a ``.js`` sibling is added
       as its own entry whenever it exists.
    4. Everything else is added as one entry.

Related Modules:
    - :mod:`shipkit.pack.paths` - destination/source resolution and DedupSet
    - :mod:`shipkit.pack.manifest` - where entries are written

Tags:
    selection, manifest, web-application, config-substitution, dedup
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from shipkit.core.errors import (
    MissingOptionalInputError,
    MissingSourceFileError,
    NonRootScriptWarning,
    ShipkitError,
)
from shipkit.core.logging import get_logger
from shipkit.pack.filesystem import FileSystem
from shipkit.pack.manifest import ManifestDocument
from shipkit.pack.paths import (
    DedupSet,
    FileReference,
    SelectionContext,
    change_extension,
    is_blank,
    normalize_separators,
    relocate_prefix,
    resolve_destination,
    resolve_source,
)

logger = get_logger(__name__)

WEB_APPLICATION_MARKER = "web.config"
PACKAGE_METADATA_FILE = "packages.config"
DEFAULT_CONFIG_SUBSTITUTION_NAME = "app.config"
BINARIES_DIRECTORY = "bin"
DEPLOYMENT_SCRIPTS = ("Deploy.ps1", "DeployFailed.ps1", "PreDeploy.ps1", "PostDeploy.ps1")
PRECOMPILED_SOURCE_EXTENSION = ".ts"
COMPILED_OUTPUT_EXTENSION = ".js"


class ApplicationShape(str, Enum):
    """Kind of application being packaged."""

    CONTENT = "content"  # Web application: content at the root, binaries in bin/
    BINARY = "binary"  # Console application or service: binaries only

    @classmethod
    def detect(cls, project_dir: str, fs: FileSystem) -> ApplicationShape:
        """Probe ``project_dir`` for the web application marker file."""
        if fs.enumerate_files(project_dir, WEB_APPLICATION_MARKER):
            return cls.CONTENT
        return cls.BINARY


@dataclass(frozen=True)
class SelectionOptions:
    """Caller flags for per-file handling.

    Attributes:
        app_config_file: Absolute path of the replacement configuration file
        config_substitution_name: File name replaced by ``app_config_file``
        include_typescript_sources: Ship ``.ts`` files next to their ``.js``
        ignore_non_root_scripts: Suppress the non-root deployment script warning
    """

    app_config_file: str | None = None
    config_substitution_name: str = DEFAULT_CONFIG_SUBSTITUTION_NAME
    include_typescript_sources: bool = False
    ignore_non_root_scripts: bool = False


class FileSelector:
    """Writes selected files into a manifest.

    Parameters
    ----------
    manifest
        Document receiving ``<file>`` entries.
    fs
        Filesystem used for existence checks and path normalization.
    options
        Per-file handling flags.
    dedup
        Run-scoped set of source paths already written. Owned by the caller.

    Example::

        selector = FileSelector(manifest, LocalFileSystem(), SelectionOptions(), DedupSet())
        selector.select(content, binaries, ApplicationShape.CONTENT, "/src/Web", "/src/Web/bin")
    """

    def __init__(
        self,
        manifest: ManifestDocument,
        fs: FileSystem,
        options: SelectionOptions,
        dedup: DedupSet,
    ) -> None:
        self.manifest = manifest
        self.fs = fs
        self.options = options
        self.dedup = dedup
        self.added = 0
        self.missing: list[str] = []
        self.warnings: list[ShipkitError] = []

    # ------------------------------------------------------------------
    # Top-level policy
    # ------------------------------------------------------------------

    def select(
        self,
        content: Iterable[FileReference],
        binaries: Iterable[FileReference],
        shape: ApplicationShape,
        project_dir: str,
        out_dir: str,
        *,
        enforce_adding_files: bool = False,
    ) -> bool:
        """Run the content/binary passes for ``shape``.

        Returns False without touching the manifest when it already lists
        files and ``enforce_adding_files`` is not set.
        """
        if self.manifest.has_files() and not enforce_adding_files:
            logger.info(
                "pack.selection.skipped",
                reason="The manifest already contains a <files /> section with one or more "
                "elements and adding files was not enforced.",
            )
            return False

        content = [
            ref for ref in content
            if os.path.basename(normalize_separators(ref.item_spec)).casefold()
            != PACKAGE_METADATA_FILE
        ]

        if shape is ApplicationShape.CONTENT:
            logger.info("pack.shape", shape=shape.value, detail="web application (web.config detected)")

            logger.info("pack.selection.pass", files="content")
            self.add_files(content, SelectionContext(project_dir))

            logger.info("pack.selection.pass", files="binaries", target=BINARIES_DIRECTORY)
            self.add_files(
                binaries,
                SelectionContext(
                    project_dir,
                    target_directory=BINARIES_DIRECTORY,
                    relocate_root=out_dir,
                ),
            )
        else:
            logger.info("pack.shape", shape=shape.value, detail="console or service application")

            logger.info("pack.selection.pass", files="binaries")
            self.add_files(binaries, SelectionContext(project_dir, relocate_root=out_dir))

        return True

    # ------------------------------------------------------------------
    # One pass
    # ------------------------------------------------------------------

    def add_files(self, references: Iterable[FileReference], context: SelectionContext) -> int:
        """Add ``references`` under ``context``; returns the number of entries written."""
        before = self.added
        prefix = relocate_prefix(context, self.fs)

        for reference in references:
            destination = resolve_destination(reference, context, self.fs, prefix)
            source = resolve_source(reference, context, self.fs)

            if not self.fs.file_exists(source):
                self.missing.append(source)
                error = MissingSourceFileError(
                    f"The source file '{source}' does not exist, so it will not be "
                    "included in the package"
                ).with_context(path=source)
                logger.info("pack.file.missing", **error.to_dict())
                continue

            if not self.dedup.add(source):
                continue

            file_name = os.path.basename(destination)

            if file_name.casefold() == self.options.config_substitution_name.casefold():
                self._substitute_config(source, destination)
                continue

            if any(file_name.casefold() == s.casefold() for s in DEPLOYMENT_SCRIPTS):
                self._check_script_location(destination)

            if os.path.splitext(source)[1].casefold() == PRECOMPILED_SOURCE_EXTENSION:
                self._add_precompiled(source, destination)
            else:
                self._add(source, destination)

        return self.added - before

    # ------------------------------------------------------------------
    # Special cases
    # ------------------------------------------------------------------

    def _substitute_config(self, source: str, destination: str) -> None:
        replacement = self.options.app_config_file
        if is_blank(replacement):
            logger.info("pack.config.dropped", source=source, target=destination)
            return

        if not self.fs.file_exists(replacement):
            self._warn(
                MissingOptionalInputError(
                    f"The configuration file '{replacement}' does not exist; "
                    f"'{destination}' will not be included in the package."
                ).with_context(path=replacement)
            )
            return

        if not self.dedup.add(replacement):
            return

        target = os.path.join(os.path.dirname(destination), os.path.basename(replacement))
        self._add(replacement, target)

    def _check_script_location(self, destination: str) -> None:
        if os.sep not in destination and "/" not in destination:
            return
        if self.options.ignore_non_root_scripts:
            return
        self._warn(
            NonRootScriptWarning(
                f"Deployment scripts are only executed from the root of the package. "
                f"The script '{destination}' lives in a subdirectory, so it will not be "
                "executed. Move it to the root of the project if it should run, or "
                "suppress this warning with ignore_non_root_scripts."
            ).with_context(path=destination)
        )

    def _add_precompiled(self, source: str, destination: str) -> None:
        if self.options.include_typescript_sources:
            self._add(source, destination)

        compiled = change_extension(source, COMPILED_OUTPUT_EXTENSION)
        if self.fs.file_exists(compiled) and self.dedup.add(compiled):
            self._add(compiled, change_extension(destination, COMPILED_OUTPUT_EXTENSION))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _add(self, source: str, target: str) -> None:
        self.manifest.add_file(source, target)
        self.added += 1
        logger.info("pack.file.added", target=target)

    def _warn(self, warning: ShipkitError) -> None:
        self.warnings.append(warning)
        logger.warning("pack.warning", **warning.to_dict())
