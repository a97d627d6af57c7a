"""Packaging orchestrator for shipkit.

Coordinates one packaging run from scratch-directory preparation to the
copied ``.nupkg`` files: prepare → obtain manifest → merge metadata →
select files → persist → invoke packager → collect outputs.

Why This Matters:
    A packaging run touches the filesystem, an XML document and an external
    executable. ``PackRunner`` wraps this into a single ``run()`` call that
    either returns a ``PackResult`` or raises exactly one ``ShipkitError``
    with a diagnostic code. A failed run never reports packages.

Key Concepts:
    PackRunner: ``PackConfig`` → ``PackResult``. Owns the run's
        ``DedupSet`` and ``ManifestDocument``; neither outlives ``run()``.
    Scratch directories: ``<project>/obj/shipkit-packing`` receives the
        manifest, ``<project>/obj/shipkit-packed`` receives the packager's
        output. Both are purged at the start of every run.
    Build server signals: with ``publish_to_build_server`` and a
        ``TEAMCITY_VERSION`` environment variable, every copied package is
        announced with a ``##teamcity[publishArtifacts '...']`` message.

Architecture Decisions:
    - Linear phases, no backward transitions and no cancellation.
    - Collaborators (filesystem, packager, settings) are injectable; the
      defaults talk to the local disk and a discovered ``nuget``.
    - Foreign exceptions are converted at the ``run()`` boundary: ``OSError``
      becomes ``ResourceUnavailableError``, anything else a ``ShipkitError``
      with an ``SKX`` code.

Related Modules:
    - :mod:`shipkit.pack.config` - PackConfig
    - :mod:`shipkit.pack.selection` - File selection
    - :mod:`shipkit.pack.packager` - External packager
    - :mod:`shipkit.pack.results` - PackResult

Tags:
    workflow, orchestration, packaging, runner, nuget
"""

from __future__ import annotations

import getpass
import os
from datetime import date
from typing import Callable

from shipkit.core.errors import (
    ExternalToolError,
    MissingOptionalInputError,
    ResourceUnavailableError,
    ShipkitError,
    error_code,
)
from shipkit.core.logging import LogContext, get_logger
from shipkit.core.retry import ConstantBackoff
from shipkit.core.settings import ShipkitSettings
from shipkit.pack.config import PackConfig
from shipkit.pack.filesystem import FileSystem, LocalFileSystem
from shipkit.pack.manifest import ManifestDocument
from shipkit.pack.packager import ExternalPackager, NuGetPackager, discover_packager
from shipkit.pack.paths import DedupSet, is_blank
from shipkit.pack.results import PackageArtifact, PackResult
from shipkit.pack.selection import ApplicationShape, FileSelector, SelectionOptions

logger = get_logger(__name__)

STAGING_DIRECTORY = "shipkit-packing"
PACKED_DIRECTORY = "shipkit-packed"
PACKAGE_PATTERN = "*.nupkg"
MANIFEST_EXTENSION = ".nuspec"
BUILD_SERVER_VARIABLE = "TEAMCITY_VERSION"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (OSError, KeyError):
        return "unknown"


_TEAMCITY_ESCAPES = str.maketrans(
    {"|": "||", "'": "|'", "[": "|[", "]": "|]", "\n": "|n", "\r": "|r"}
)


def teamcity_escape(value: str) -> str:
    """Escape a value for a ``##teamcity[...]`` service message."""
    return value.translate(_TEAMCITY_ESCAPES)


def _print_service_message(message: str) -> None:
    print(message, flush=True)


class PackRunner:
    """Runs one packaging operation.

    Parameters
    ----------
    config
        Inputs of the run.
    fs
        Filesystem; ``LocalFileSystem`` when omitted.
    packager
        External packager; a ``NuGetPackager`` on the discovered executable
        when omitted.
    settings
        Build-agent settings; read from the environment when omitted.
    service_message
        Receives build server service messages; prints to stdout by default.

    Example::

        from shipkit.pack import PackConfig, PackRunner

        config = PackConfig(project_dir="/src/Web", out_dir="/src/Web/bin",
                            project_name="Web.csproj", package_version="1.0.0")
        result = PackRunner(config).run()
        print(result.package_paths)
    """

    def __init__(
        self,
        config: PackConfig,
        fs: FileSystem | None = None,
        packager: ExternalPackager | None = None,
        settings: ShipkitSettings | None = None,
        service_message: Callable[[str], None] = _print_service_message,
    ) -> None:
        self.config = config
        self.fs = fs or LocalFileSystem()
        self.settings = settings or ShipkitSettings()
        self.service_message = service_message
        self._packager = packager

    def run(self) -> PackResult:
        """Execute the packaging run.

        Returns
        -------
        PackResult
            Produced packages and run details.

        Raises
        ------
        ShipkitError
            On any fatal condition; ``code`` identifies the failure.
        """
        result = PackResult(run_id=self.config.run_id, project=self.config.project_name)

        with LogContext(run_id=self.config.run_id, project=self.config.project_name):
            try:
                self._run(result)
            except ShipkitError as e:
                logger.error("pack.failed", **e.to_dict())
                raise
            except OSError as e:
                error = ResourceUnavailableError(str(e), cause=e)
                logger.error("pack.failed", **error.to_dict())
                raise error from e
            except Exception as e:
                error = ShipkitError(str(e), code=error_code(e), cause=e)
                logger.error("pack.failed", **error.to_dict())
                raise error from e

            result.mark_complete()
            logger.info(
                "pack.complete",
                packages=len(result.packages),
                files_added=result.files_added,
                duration_seconds=result.duration_seconds,
            )
        return result

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _run(self, result: PackResult) -> None:
        config = self.config
        self._log_diagnostics()

        packager = self._resolve_packager()
        result.packager_path = packager.path
        logger.debug("pack.packager.path", path=packager.path)

        # Phase 1: Prepare
        staging = self._create_empty_directory(STAGING_DIRECTORY)
        packed = self._create_empty_directory(PACKED_DIRECTORY)

        # Phase 2: Obtain manifest
        manifest_path, manifest = self._obtain_manifest(staging)
        result.manifest_path = manifest_path

        # Phase 3: Merge metadata
        if not is_blank(config.append_to_package_id):
            manifest.append_to_id(config.append_to_package_id)
        self._add_release_notes(manifest, result)
        result.package_id = manifest.package_id

        out_dir = self.fs.get_full_path(config.out_dir)

        # Phase 4: Select files
        selector = FileSelector(manifest, self.fs, self._selection_options(), DedupSet())
        result.selection_ran = selector.select(
            config.content_files,
            config.written_files,
            ApplicationShape.detect(config.project_dir, self.fs),
            config.project_dir,
            out_dir,
            enforce_adding_files=config.enforce_adding_files,
        )
        result.files_added = selector.added
        result.missing_files = list(selector.missing)
        result.warnings.extend(w.to_dict() for w in selector.warnings)

        # Phase 5: Persist
        self.fs.overwrite_file(manifest_path, manifest.to_xml())
        logger.debug("pack.manifest.saved", path=manifest_path)

        # Phase 6: Invoke packager
        run = packager.pack(
            manifest_path,
            config.project_dir,
            packed,
            version=config.package_version or None,
            properties=config.packager_properties,
            extra_arguments=config.packager_arguments,
        )
        if run.exit_code != 0:
            raise ExternalToolError(
                f"There was an error calling the packager (exit code {run.exit_code}): "
                f"{run.stderr or run.stdout}. Command line: '{' '.join(run.command)}'",
                output="\n".join(line for _, line in run.output),
            ).with_context(command=" ".join(run.command), exit_code=run.exit_code)

        # Phase 7: Collect outputs
        result.packages = self._copy_built_packages(packed, out_dir)

    def _log_diagnostics(self) -> None:
        config = self.config
        logger.debug(
            "pack.arguments",
            content_files=len(config.content_files),
            written_files=len(config.written_files),
            project_dir=config.project_dir,
            out_dir=config.out_dir,
            package_version=config.package_version,
            project_name=config.project_name,
            primary_output_assembly=config.primary_output_assembly,
            packager_arguments=config.packager_arguments,
            packager_properties=config.packager_properties,
        )

    def _resolve_packager(self) -> ExternalPackager:
        if self._packager is not None:
            return self._packager
        path = discover_packager(self.config.packager_path, self.settings.nuget_path)
        return NuGetPackager(path)

    def _create_empty_directory(self, name: str) -> str:
        path = os.path.join(self.config.project_dir, "obj", name)
        logger.debug("pack.directory.create", path=path)
        retry = ConstantBackoff(
            max_retries=self.settings.purge_retries,
            delay=self.settings.purge_retry_delay,
        )
        try:
            self.fs.purge_directory(path, retry)
            self.fs.ensure_directory_exists(path)
        except OSError as e:
            raise ResourceUnavailableError(
                f"The directory '{path}' could not be prepared: {e}",
                cause=e,
            ).with_context(path=path) from e
        self.fs.ensure_enough_free_space(path, self.settings.min_free_space_bytes)
        return path

    def _manifest_file_name(self) -> str:
        if not is_blank(self.config.manifest_file_name):
            return self.config.manifest_file_name.strip()
        return self.config.project_base_name + MANIFEST_EXTENSION

    def _obtain_manifest(self, staging: str) -> tuple[str, ManifestDocument]:
        config = self.config
        file_name = self._manifest_file_name()
        source = os.path.join(config.project_dir, file_name)
        manifest_path = os.path.join(staging, os.path.basename(file_name))

        if self.fs.file_exists(source):
            logger.info("pack.manifest.found", path=source)
            self.fs.copy_file(source, manifest_path)
            return manifest_path, ManifestDocument.parse(self.fs.read_file(manifest_path))

        logger.info(
            "pack.manifest.generated",
            path=manifest_path,
            detail=f"A manifest named '{file_name}' was not found in the project root, so one "
            "was generated. Consider adding your own to customize the description.",
        )
        manifest = ManifestDocument.create(
            package_id=config.project_base_name,
            version=config.package_version,
            author=_current_user(),
            description=f"The {config.project_name} deployment package, "
            f"built on {date.today().isoformat()}",
        )
        return manifest_path, manifest

    def _add_release_notes(self, manifest: ManifestDocument, result: PackResult) -> None:
        if is_blank(self.config.release_notes_file):
            return

        path = self.fs.get_full_path(
            os.path.join(self.config.project_dir, self.config.release_notes_file)
        )
        if not self.fs.file_exists(path):
            warning = MissingOptionalInputError(
                f"The release notes file '{path}' does not exist or could not be found. "
                "Release notes will not be added to the package."
            ).with_context(path=path)
            result.warnings.append(warning.to_dict())
            logger.warning("pack.warning", **warning.to_dict())
            return

        logger.info("pack.release_notes.added", path=path)
        manifest.set_release_notes(self.fs.read_file(path))

    def _selection_options(self) -> SelectionOptions:
        config = self.config
        app_config = None
        if not is_blank(config.app_config_file):
            app_config = self.fs.get_full_path(
                os.path.join(config.project_dir, config.app_config_file)
            )
        return SelectionOptions(
            app_config_file=app_config,
            config_substitution_name=config.config_substitution_name,
            include_typescript_sources=config.include_typescript_sources,
            ignore_non_root_scripts=config.ignore_non_root_scripts,
        )

    def _copy_built_packages(self, packed: str, out_dir: str) -> list[PackageArtifact]:
        packages: list[PackageArtifact] = []
        publish = self.config.publish_to_build_server and not is_blank(
            os.environ.get(BUILD_SERVER_VARIABLE)
        )

        self.fs.ensure_directory_exists(out_dir)
        for package in self.fs.enumerate_files(packed, PACKAGE_PATTERN):
            name = os.path.basename(package)
            destination = os.path.join(out_dir, name)
            logger.info("pack.package.copied", source=package, destination=destination)
            self.fs.copy_file(package, destination)
            packages.append(PackageArtifact(path=destination, name=name))

            if publish:
                self.service_message(
                    f"##teamcity[publishArtifacts '{teamcity_escape(destination)}']"
                )

        logger.debug("pack.packages.location", out_dir=out_dir)
        return packages
