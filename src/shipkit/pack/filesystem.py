"""Filesystem access for packaging runs.

All disk access of the packaging engine goes through the ``FileSystem``
protocol so that selection rules can be tested against an in-memory fake
and the orchestrator can be pointed at a sandbox.

``LocalFileSystem`` is the real implementation on top of ``os`` and
``shutil``. Purges of scratch directories are retried because build agents
regularly have a scanner or indexer holding a handle for a moment.
"""

from __future__ import annotations

import fnmatch
import os
import shutil
from typing import Protocol

from shipkit.core.errors import ResourceUnavailableError
from shipkit.core.logging import get_logger
from shipkit.core.retry import ConstantBackoff, RetryContext, RetryStrategy

logger = get_logger(__name__)


class FileSystem(Protocol):
    """Filesystem operations used by the packaging engine."""

    def file_exists(self, path: str | None) -> bool: ...

    def read_file(self, path: str) -> str: ...

    def overwrite_file(self, path: str, text: str) -> None: ...

    def copy_file(self, source: str, destination: str) -> None: ...

    def ensure_directory_exists(self, path: str) -> None: ...

    def purge_directory(self, path: str, retry: RetryStrategy | None = None) -> None: ...

    def ensure_enough_free_space(self, path: str, required_bytes: int) -> None: ...

    def get_full_path(self, path: str) -> str: ...

    def get_path_relative_to(self, path: str, base: str) -> str: ...

    def enumerate_files(self, directory: str, pattern: str) -> list[str]: ...


class LocalFileSystem:
    """``FileSystem`` backed by the local disk."""

    def file_exists(self, path: str | None) -> bool:
        return bool(path) and os.path.isfile(path)

    def read_file(self, path: str) -> str:
        with open(path, encoding="utf-8-sig") as fp:
            return fp.read()

    def overwrite_file(self, path: str, text: str) -> None:
        with open(path, "w", encoding="utf-8", newline="") as fp:
            fp.write(text)

    def copy_file(self, source: str, destination: str) -> None:
        shutil.copyfile(source, destination)

    def ensure_directory_exists(self, path: str) -> None:
        os.makedirs(path, exist_ok=True)

    def purge_directory(self, path: str, retry: RetryStrategy | None = None) -> None:
        """Delete ``path`` and everything below it, retrying on OSError."""
        if not os.path.isdir(path):
            return

        def _on_retry(attempt: int, error: Exception, delay: float) -> None:
            logger.warning(
                "fs.purge.retry", path=path, attempt=attempt, delay=delay, error=str(error)
            )

        ctx = RetryContext(retry or ConstantBackoff(), on_retry=_on_retry)
        ctx.run(shutil.rmtree, path)

    def ensure_enough_free_space(self, path: str, required_bytes: int) -> None:
        free = shutil.disk_usage(path).free
        if free < required_bytes:
            raise ResourceUnavailableError(
                f"The drive containing the directory '{path}' has only "
                f"{free // (1024 * 1024)} MB free; at least "
                f"{required_bytes // (1024 * 1024)} MB is required."
            ).with_context(path=path, free_bytes=free, required_bytes=required_bytes)

    def get_full_path(self, path: str) -> str:
        return os.path.abspath(path)

    def get_path_relative_to(self, path: str, base: str) -> str:
        relative = os.path.relpath(path, base)
        return "" if relative == os.curdir else relative

    def enumerate_files(self, directory: str, pattern: str) -> list[str]:
        """Files directly in ``directory`` matching ``pattern`` (case-insensitive)."""
        pattern = pattern.lower()
        return sorted(
            os.path.join(directory, name)
            for name in os.listdir(directory)
            if fnmatch.fnmatchcase(name.lower(), pattern)
            and os.path.isfile(os.path.join(directory, name))
        )
