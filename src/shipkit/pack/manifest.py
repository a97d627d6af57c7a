"""Manifest document model for shipkit.

An in-memory view of a NuGet-style ``.nuspec`` manifest: a ``package`` root
holding ``metadata`` (id, version, authors, ...) and an optional ``files``
section of ``<file src=".." target=".."/>`` entries.

Why This Matters:
    Hand-authored manifests arrive in every shape: with or without the
    ``http://schemas.microsoft.com/packaging/...`` default namespace, with
    comments, with or without a ``files`` section. The packaging run only
    mutates a handful of elements, so the model works on the parsed
    ``ElementTree`` directly and writes everything else back untouched.

Key Concepts:
    find_element: Namespace-tolerant lookup of a direct child by local name.
        Returns ``None`` when absent; the caller decides whether that is fatal.
    add_child_element: Appends a child that inherits the parent's namespace.
    require_element: ``Ok(element)`` or ``Err(ManifestInvalidError)``.
    ManifestDocument: Wraps the tree with the operations a packaging run needs
        (id suffix, release notes, file entries, serialization).

Architecture Decisions:
    - xml.etree, not a DOM library: The manifest is small and only a few
      elements are touched; comments and processing instructions are kept by
      building the tree with ``insert_comments``/``insert_pis``.
    - Added elements inherit the parent namespace so that a namespaced
      manifest serializes back with a single default ``xmlns``.

Related Modules:
    - :mod:`shipkit.pack.selection` - Writes file entries into the document
    - :mod:`shipkit.pack.workflow` - Loads, synthesizes and persists it

Tags:
    manifest, nuspec, xml, namespace, elementtree
"""

from __future__ import annotations

import copy
import io
from dataclasses import dataclass
from typing import Iterator
from xml.etree import ElementTree
from xml.etree.ElementTree import Element

from shipkit.core.errors import ManifestInvalidError
from shipkit.core.logging import get_logger
from shipkit.core.result import Err, Ok, Result, ok_or

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Element helpers
# ---------------------------------------------------------------------------


def local_name(tag: str) -> str:
    """Strip a ``{namespace}`` prefix from an ElementTree tag."""
    if tag.startswith("{"):
        return tag.rsplit("}", 1)[1]
    return tag


def namespace_of(tag: str) -> str | None:
    """Return the namespace URI of an ElementTree tag, if any."""
    if tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return None


def _child_elements(parent: Element) -> Iterator[Element]:
    # Comments and processing instructions carry a callable tag
    for child in parent:
        if isinstance(child.tag, str):
            yield child


def find_element(parent: Element, name: str) -> Element | None:
    """Return the first direct child whose local name is ``name``.

    The namespace URI (or prefix) of the child is ignored.
    """
    for child in _child_elements(parent):
        if local_name(child.tag) == name:
            return child
    return None


def add_child_element(
    parent: Element,
    name: str,
    text: str | None = None,
    attributes: dict[str, str] | None = None,
) -> Element:
    """Append a new ``name`` element to ``parent`` and return it.

    The child is created in the parent's namespace.
    """
    namespace = namespace_of(parent.tag)
    tag = f"{{{namespace}}}{name}" if namespace else name
    child = ElementTree.SubElement(parent, tag, dict(attributes or {}))
    if text is not None:
        child.text = text
    return child


def require_element(parent: Element, name: str) -> Result[Element]:
    """Look up a child that must exist.

    Returns ``Err(ManifestInvalidError)`` naming ``name`` when it is absent.
    """
    return ok_or(
        find_element(parent, name),
        ManifestInvalidError.missing_element(name),
    )


@dataclass(frozen=True)
class FileEntry:
    """One ``<file>`` entry: absolute source path and package-relative target."""

    source: str
    target: str


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class ManifestDocument:
    """A parsed or synthesized package manifest.

    Parameters
    ----------
    root
        Root element of the document. Normally ``package``; any other root
        is accepted here and rejected by operations that require ``package``.
    """

    def __init__(self, root: Element) -> None:
        self.root = root

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def parse(cls, text: str) -> ManifestDocument:
        """Parse manifest XML text.

        Raises
        ------
        ManifestInvalidError
            If the text is not well-formed XML.
        """
        builder = ElementTree.TreeBuilder(insert_comments=True, insert_pis=True)
        parser = ElementTree.XMLParser(target=builder)
        try:
            parser.feed(text.lstrip("\ufeff"))
            root = parser.close()
        except ElementTree.ParseError as e:
            raise ManifestInvalidError(
                f"The manifest could not be parsed: {e}",
                cause=e,
            ) from e
        return cls(root)

    @classmethod
    def create(
        cls,
        package_id: str,
        version: str,
        author: str,
        description: str,
        *,
        license_url: str = "http://example.com",
        project_url: str = "http://example.com",
    ) -> ManifestDocument:
        """Synthesize a minimal manifest with default metadata.

        The ``files`` section is not created until the first file is added.
        """
        package = Element("package")
        metadata = add_child_element(package, "metadata")
        add_child_element(metadata, "id", package_id)
        add_child_element(metadata, "version", version)
        add_child_element(metadata, "authors", author)
        add_child_element(metadata, "owners", author)
        add_child_element(metadata, "licenseUrl", license_url)
        add_child_element(metadata, "projectUrl", project_url)
        add_child_element(metadata, "requireLicenseAcceptance", "false")
        add_child_element(metadata, "description", description)
        add_child_element(metadata, "releaseNotes", "")
        return cls(package)

    # ------------------------------------------------------------------
    # Required elements
    # ------------------------------------------------------------------

    def package(self) -> Result[Element]:
        if local_name(self.root.tag) == "package":
            return Ok(self.root)
        return Err(ManifestInvalidError.missing_element("package"))

    def metadata(self) -> Result[Element]:
        return self.package().flat_map(lambda p: require_element(p, "metadata"))

    def metadata_value(self, name: str) -> str | None:
        """Text of a metadata field, or None when the field or ``metadata`` is absent."""
        metadata = self.metadata().unwrap_or(None)
        element = None if metadata is None else find_element(metadata, name)
        if element is None:
            return None
        return element.text or ""

    @property
    def package_id(self) -> str | None:
        return self.metadata_value("id")

    @property
    def version(self) -> str | None:
        return self.metadata_value("version")

    # ------------------------------------------------------------------
    # Metadata mutations
    # ------------------------------------------------------------------

    def append_to_id(self, suffix: str) -> str:
        """Append ``.suffix`` to the package id and return the new id."""
        id_element = self.metadata().flat_map(lambda m: require_element(m, "id")).unwrap()
        id_element.text = f"{id_element.text or ''}.{suffix.strip()}"
        logger.info("manifest.id.updated", package_id=id_element.text)
        return id_element.text

    def set_release_notes(self, notes: str) -> None:
        """Replace the release notes, creating the element when missing."""
        metadata = self.metadata().unwrap()
        release_notes = find_element(metadata, "releaseNotes")
        if release_notes is None:
            add_child_element(metadata, "releaseNotes", notes)
        else:
            release_notes.text = notes

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def has_files(self) -> bool:
        """True when a ``files`` section with one or more entries exists."""
        package = self.package().unwrap()
        files = find_element(package, "files")
        return files is not None and any(True for _ in _child_elements(files))

    def files_element(self) -> Element:
        """The ``files`` section, created on first use."""
        package = self.package().unwrap()
        files = find_element(package, "files")
        if files is None:
            files = add_child_element(package, "files")
        return files

    def add_file(self, source: str, target: str) -> Element:
        return add_child_element(
            self.files_element(), "file", attributes={"src": source, "target": target}
        )

    def entries(self) -> list[FileEntry]:
        package = self.package().unwrap()
        files = find_element(package, "files")
        if files is None:
            return []
        return [
            FileEntry(source=f.get("src", ""), target=f.get("target", ""))
            for f in _child_elements(files)
            if local_name(f.tag) == "file"
        ]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_xml(self) -> str:
        """Serialize to UTF-8 XML text with a declaration.

        A manifest whose elements all share the root namespace is written
        with that namespace as the default ``xmlns`` and unprefixed tags.
        Attributes stay unqualified.
        """
        root = self.root
        namespace = namespace_of(root.tag)
        elements = [e for e in root.iter() if isinstance(e.tag, str)]
        if namespace and all(namespace_of(e.tag) == namespace for e in elements):
            root = copy.deepcopy(self.root)
            for element in root.iter():
                if isinstance(element.tag, str):
                    element.tag = local_name(element.tag)
            root.attrib = {"xmlns": namespace, **root.attrib}

        buffer = io.BytesIO()
        ElementTree.ElementTree(root).write(buffer, encoding="utf-8", xml_declaration=True)
        return buffer.getvalue().decode("utf-8")
