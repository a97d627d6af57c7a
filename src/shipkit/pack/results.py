"""Result models for packaging runs.

A ``PackResult`` is returned only when a run succeeds; failures surface as
``ShipkitError`` subclasses. The model still records warnings so that a
caller can decide whether an advisory condition (a missing release-notes
file, a deployment script in a subdirectory) should fail its own pipeline.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class PackStatus(str, Enum):
    """Status of a packaging run."""

    PENDING = "PENDING"
    PASSED = "PASSED"


class PackageArtifact(BaseModel):
    """A package produced by the packager and copied to the output directory."""

    path: str  # Absolute path in the output directory
    name: str  # File name, e.g. Web.1.2.3.nupkg


class PackResult(BaseModel):
    """Outcome of a packaging run."""

    run_id: str
    project: str
    started_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    completed_at: str | None = None
    duration_seconds: float = 0.0
    status: PackStatus = PackStatus.PENDING

    packager_path: str | None = None
    manifest_path: str | None = None
    package_id: str | None = None
    files_added: int = 0
    selection_ran: bool = False
    packages: list[PackageArtifact] = Field(default_factory=list)
    warnings: list[dict[str, Any]] = Field(default_factory=list)
    missing_files: list[str] = Field(default_factory=list)

    def mark_complete(self, status: PackStatus | None = None) -> None:
        """Mark the run as complete, compute duration and status."""
        self.completed_at = datetime.now(UTC).isoformat()
        if self.started_at and self.completed_at:
            start = datetime.fromisoformat(self.started_at)
            end = datetime.fromisoformat(self.completed_at)
            self.duration_seconds = (end - start).total_seconds()
        self.status = status or PackStatus.PASSED

    @property
    def package_paths(self) -> list[str]:
        return [p.path for p in self.packages]
