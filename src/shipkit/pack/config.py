"""Configuration model for a packaging run.

``PackConfig`` carries everything a caller resolves before asking for a
package: where the project lives, where the build wrote its output, which
files the build produced, and the flags that change how they are laid out.

Why This Matters:
    Build servers drive packaging from scripts and environment variables;
    developers drive it from the command line. Both need the same validated
    inputs with the same defaults. ``from_env()`` lets a CI job set
    ``SHIPKIT_PACK_APPEND_TO_PACKAGE_ID=Staging`` without changing the build.

Key Concepts:
    content_files: Files of the project that are content (HTML, scripts).
    written_files: Files the build wrote to its output directory.
    Both accept ``FileReference`` objects or ``item|link`` strings.

Architecture Decisions:
    - Pydantic v2 BaseModel with ``model_validator(mode="after")`` for the
      auto-generated ``run_id``.
    - Override precedence: kwargs > env vars > field defaults.

Related Modules:
    - :mod:`shipkit.pack.workflow` - Consumes the config
    - :mod:`shipkit.core.settings` - Build-agent settings that are not per run

Tags:
    config, pydantic, environment, packaging
"""

from __future__ import annotations

import os
import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shipkit.pack.paths import FileReference
from shipkit.pack.selection import DEFAULT_CONFIG_SUBSTITUTION_NAME

_TRUE_VALUES = ("true", "1", "yes")


class PackConfig(BaseModel):
    """Inputs of one packaging run.

    Example::

        config = PackConfig(
            project_dir="/src/Web",
            out_dir="/src/Web/bin",
            project_name="Web.csproj",
            content_files=["index.html", "Views/Home.cshtml"],
            written_files=["/src/Web/bin/Web.dll"],
            package_version="1.2.3",
        )
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Project
    project_dir: str = Field(description="Root directory of the project being packaged")
    out_dir: str = Field(description="Directory the build wrote its output to")
    project_name: str = Field(description="Project file name, e.g. Web.csproj")
    primary_output_assembly: str = Field(
        default="",
        description="Main assembly of the build; reported in diagnostics",
    )

    # Build listings
    content_files: list[FileReference] = Field(default_factory=list)
    written_files: list[FileReference] = Field(default_factory=list)

    # Manifest
    manifest_file_name: str | None = Field(
        default=None,
        description="Manifest to use instead of <project>.nuspec",
    )
    package_version: str = Field(default="", description="Version passed to the packager")
    append_to_package_id: str | None = Field(
        default=None,
        description="Suffix appended to the package id as '.suffix'",
    )
    release_notes_file: str | None = Field(
        default=None,
        description="Text file whose contents replace the release notes",
    )

    # Selection
    app_config_file: str | None = Field(
        default=None,
        description="File shipped in place of the configuration substitution target",
    )
    config_substitution_name: str = Field(default=DEFAULT_CONFIG_SUBSTITUTION_NAME)
    include_typescript_sources: bool = False
    ignore_non_root_scripts: bool = False
    enforce_adding_files: bool = Field(
        default=False,
        description="Add files even when the manifest already lists some",
    )

    # Packager
    packager_path: str | None = Field(default=None, description="Explicit nuget executable")
    packager_arguments: str | None = Field(
        default=None,
        description="Extra command-line arguments for the packager",
    )
    packager_properties: str | None = Field(
        default=None,
        description="Value of the packager's -Properties option",
    )

    # Output
    publish_to_build_server: bool = Field(
        default=False,
        description="Emit TeamCity artifact service messages",
    )

    # Internal
    run_id: str = Field(default="", description="Unique run identifier (auto-generated)")

    @field_validator("content_files", "written_files", mode="before")
    @classmethod
    def _parse_references(cls, value: Any) -> Any:
        if value is None:
            return []
        return [FileReference.parse(v) if isinstance(v, str) else v for v in value]

    @model_validator(mode="after")
    def _set_defaults(self) -> PackConfig:
        if not self.run_id:
            self.run_id = uuid.uuid4().hex[:12]
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> PackConfig:
        """Create config from SHIPKIT_PACK_* environment variables."""
        env_map = {
            "project_dir": "SHIPKIT_PACK_PROJECT_DIR",
            "out_dir": "SHIPKIT_PACK_OUT_DIR",
            "project_name": "SHIPKIT_PACK_PROJECT_NAME",
            "package_version": "SHIPKIT_PACK_VERSION",
            "manifest_file_name": "SHIPKIT_PACK_MANIFEST_FILE_NAME",
            "append_to_package_id": "SHIPKIT_PACK_APPEND_TO_PACKAGE_ID",
            "release_notes_file": "SHIPKIT_PACK_RELEASE_NOTES_FILE",
            "app_config_file": "SHIPKIT_PACK_APP_CONFIG_FILE",
            "packager_path": "SHIPKIT_PACK_PACKAGER_PATH",
            "packager_arguments": "SHIPKIT_PACK_PACKAGER_ARGUMENTS",
            "packager_properties": "SHIPKIT_PACK_PACKAGER_PROPERTIES",
            "enforce_adding_files": "SHIPKIT_PACK_ENFORCE_ADDING_FILES",
            "publish_to_build_server": "SHIPKIT_PACK_PUBLISH_TO_BUILD_SERVER",
        }
        values: dict[str, Any] = {}
        for field_name, env_var in env_map.items():
            env_val = os.environ.get(env_var)
            if env_val is not None:
                if field_name in ("enforce_adding_files", "publish_to_build_server"):
                    values[field_name] = env_val.lower() in _TRUE_VALUES
                else:
                    values[field_name] = env_val
        values.update(overrides)
        return cls(**values)

    @property
    def project_base_name(self) -> str:
        """Project name without a ``.csproj``/``.vbproj`` extension."""
        name = self.project_name
        for extension in (".csproj", ".vbproj"):
            if name.lower().endswith(extension):
                return name[: -len(extension)]
        return name
