"""shipkit.pack - package assembly from build output.

Turns the files a build produced into a NuGet-style package: decides which
files belong in it, computes where each one goes, writes that layout into a
``.nuspec`` manifest and runs the external packager on it.

Key Concepts:
    PackConfig: Pydantic model with everything a run needs (directories,
        file listings, manifest and selection flags, packager options).
    PackRunner: Orchestrator - config in, ``PackResult`` out, or exactly one
        ``ShipkitError`` on failure.
    ManifestDocument: Namespace-tolerant ``.nuspec`` model.
    FileSelector: Content/binary selection rules with a run-scoped DedupSet.
    NuGetPackager: ``nuget pack`` with streamed output.

Architecture::

    manifest.py    ManifestDocument, element helpers
    paths.py       FileReference, SelectionContext, DedupSet, destination rules
    filesystem.py  FileSystem protocol, LocalFileSystem
    selection.py   ApplicationShape, FileSelector
    packager.py    NuGetPackager, run_streaming, discover_packager
    config.py      PackConfig
    results.py     PackResult, PackageArtifact
    workflow.py    PackRunner

Example:
    >>> from shipkit.pack import PackConfig, PackRunner
    >>> config = PackConfig(project_dir="/src/Web", out_dir="/src/Web/bin",
    ...                     project_name="Web.csproj")
    >>> result = PackRunner(config).run()  # doctest: +SKIP
"""

from __future__ import annotations

from shipkit.pack.config import PackConfig
from shipkit.pack.filesystem import FileSystem, LocalFileSystem
from shipkit.pack.manifest import FileEntry, ManifestDocument
from shipkit.pack.packager import NuGetPackager, PackagerRun, discover_packager
from shipkit.pack.paths import DedupSet, FileReference, SelectionContext
from shipkit.pack.results import PackageArtifact, PackResult, PackStatus
from shipkit.pack.selection import ApplicationShape, FileSelector, SelectionOptions
from shipkit.pack.workflow import PackRunner

__all__ = [
    "ApplicationShape",
    "DedupSet",
    "FileEntry",
    "FileReference",
    "FileSelector",
    "FileSystem",
    "LocalFileSystem",
    "ManifestDocument",
    "NuGetPackager",
    "PackConfig",
    "PackResult",
    "PackRunner",
    "PackStatus",
    "PackageArtifact",
    "PackagerRun",
    "SelectionContext",
    "SelectionOptions",
    "discover_packager",
]
