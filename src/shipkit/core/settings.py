"""Process-wide settings for shipkit.

Packaging runs are mostly configured per call (``PackConfig``), but a few
knobs belong to the build agent rather than the project: where the NuGet
executable lives, how much free space a scratch directory needs, how often
a locked directory purge is retried, and how logs are rendered.
``ShipkitSettings`` reads these from ``SHIPKIT_*`` environment variables
and an optional ``.env`` file.

Examples:
    >>> from shipkit.core.settings import ShipkitSettings
    >>> ShipkitSettings(min_free_space_mb=100).min_free_space_bytes
    104857600
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ShipkitSettings(BaseSettings):
    """Build-agent settings.

    Fields
    ──────
    log_level          : Structlog log level
    log_json           : Force JSON (True) or console (False) rendering; auto when unset
    nuget_path         : Packager executable used when the caller does not name one
    min_free_space_mb  : Free space required in each scratch directory
    purge_retries      : Attempts made to purge a scratch directory
    purge_retry_delay  : Seconds between purge attempts
    """

    model_config = SettingsConfigDict(
        env_prefix="SHIPKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    # ── External packager ────────────────────────────────────────
    nuget_path: str | None = Field(
        default=None,
        description="Path to nuget / NuGet.exe; PATH lookup when unset",
    )

    # ── Scratch directories ──────────────────────────────────────
    min_free_space_mb: int = Field(default=500, ge=0)
    purge_retries: int = Field(default=3, ge=1)
    purge_retry_delay: float = Field(default=1.0, ge=0)

    @property
    def min_free_space_bytes(self) -> int:
        return self.min_free_space_mb * 1024 * 1024
