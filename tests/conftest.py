"""
Shared pytest fixtures for shipkit tests.

This module provides:
- structlog reset between tests so ``capture_logs()`` sees every event
- A project builder that lays out files under ``tmp_path``
- A fake packager that writes ``.nupkg`` files instead of spawning nuget
- Settings that do not require free disk space or sleep between retries
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Generator

import pytest
import structlog

from shipkit.core.settings import ShipkitSettings
from shipkit.pack.packager import STDERR, STDOUT, PackagerRun


# =============================================================================
# Logging isolation
# =============================================================================


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Reset structlog configuration and bound context around each test."""
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Project layout
# =============================================================================


class ProjectBuilder:
    """Creates files below a project root."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> str:
        return str(self.root)

    def file(self, relative: str, content: str = "") -> str:
        """Create ``relative`` (``/`` separated) and return its absolute path."""
        target = self.root.joinpath(*relative.split("/"))
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        return str(target)

    def join(self, relative: str) -> str:
        return str(self.root.joinpath(*relative.split("/")))


@pytest.fixture
def project(tmp_path: Path) -> ProjectBuilder:
    """Empty project directory ``proj`` under ``tmp_path``."""
    return ProjectBuilder(tmp_path / "proj")


# =============================================================================
# Packager double
# =============================================================================


class FakePackager:
    """Records ``pack()`` calls and writes a package file on success."""

    def __init__(
        self,
        exit_code: int = 0,
        stdout: list[str] | None = None,
        stderr: list[str] | None = None,
        package_name: str = "Web.1.0.0.nupkg",
    ) -> None:
        self.path = "/opt/nuget/nuget"
        self.exit_code = exit_code
        self.stdout = stdout or ["Successfully created package."]
        self.stderr = stderr or []
        self.package_name = package_name
        self.calls: list[dict] = []

    def pack(
        self,
        manifest_path: str,
        base_path: str,
        output_directory: str,
        version: str | None = None,
        properties: str | None = None,
        extra_arguments: str | None = None,
    ) -> PackagerRun:
        with open(manifest_path, encoding="utf-8") as fp:
            manifest_text = fp.read()
        self.calls.append(
            {
                "manifest_path": manifest_path,
                "manifest_text": manifest_text,
                "base_path": base_path,
                "output_directory": output_directory,
                "version": version,
                "properties": properties,
                "extra_arguments": extra_arguments,
            }
        )
        if self.exit_code == 0:
            with open(os.path.join(output_directory, self.package_name), "wb") as fp:
                fp.write(b"PK")
        output = [(STDOUT, line) for line in self.stdout] + [(STDERR, line) for line in self.stderr]
        return PackagerRun(exit_code=self.exit_code, command=[self.path, "pack"], output=output)


@pytest.fixture
def fake_packager() -> FakePackager:
    return FakePackager()


@pytest.fixture
def failing_packager() -> FakePackager:
    return FakePackager(exit_code=1, stdout=[], stderr=["disk full"])


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def settings() -> ShipkitSettings:
    """Settings with no free-space requirement and no retry delay."""
    return ShipkitSettings(
        _env_file=None,
        min_free_space_mb=0,
        purge_retry_delay=0,
        nuget_path=None,
    )
