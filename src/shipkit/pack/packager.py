"""External packager invocation.

Runs ``nuget pack`` (or any compatible executable) against a persisted
manifest and streams its output into the logs while it runs.

Key Concepts:
    ExternalPackager: Protocol the orchestrator depends on; tests substitute
        a fake that writes a ``.nupkg`` without spawning anything.
    NuGetPackager: Builds the ``pack`` command line and runs it.
    run_streaming: Spawns a process and forwards stdout/stderr lines to a
        sink as they arrive. Two reader threads feed one queue that the
        calling thread drains, so the sink is never called concurrently.
    discover_packager: Explicit path, then settings, then ``PATH``.

Architecture Decisions:
    - subprocess, not a NuGet client library: the packager is an external
      executable chosen by the build agent.
    - ``.exe`` packagers are run through ``mono`` on non-Windows hosts.

Related Modules:
    - :mod:`shipkit.pack.workflow` - Calls ``pack()`` and interprets the exit code

Tags:
    packager, nuget, subprocess, streaming, threads
"""

from __future__ import annotations

import os
import queue
import shlex
import shutil
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from typing import IO, Callable, Protocol

from shipkit.core.errors import ExternalToolError
from shipkit.core.logging import get_logger

logger = get_logger(__name__)

STDOUT = "stdout"
STDERR = "stderr"

PACKAGER_NAMES = ("nuget", "NuGet.exe", "nuget.exe")
DEFAULT_PACKAGER_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "NuGet.exe")

OutputSink = Callable[[str, str], None]


@dataclass
class PackagerRun:
    """Outcome of one packager invocation."""

    exit_code: int
    command: list[str]
    output: list[tuple[str, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def stdout(self) -> str:
        return "\n".join(line for stream, line in self.output if stream == STDOUT)

    @property
    def stderr(self) -> str:
        return "\n".join(line for stream, line in self.output if stream == STDERR)


class ExternalPackager(Protocol):
    """Anything that can turn a manifest into packages in a directory."""

    path: str

    def pack(
        self,
        manifest_path: str,
        base_path: str,
        output_directory: str,
        version: str | None = None,
        properties: str | None = None,
        extra_arguments: str | None = None,
    ) -> PackagerRun: ...


def log_output(stream: str, line: str) -> None:
    """Default sink: stdout at info, stderr at error."""
    if stream == STDERR:
        logger.error("pack.packager.output", stream=stream, line=line)
    else:
        logger.info("pack.packager.output", stream=stream, line=line)


def _pump(stream_name: str, pipe: IO[str], lines: queue.Queue) -> None:
    try:
        for line in pipe:
            lines.put((stream_name, line.rstrip("\r\n")))
    finally:
        pipe.close()
        lines.put(None)


def run_streaming(
    command: list[str],
    *,
    cwd: str | None = None,
    sink: OutputSink = log_output,
) -> PackagerRun:
    """Run ``command`` and forward each output line to ``sink`` as it arrives.

    Returns after both output streams are closed and the process has exited.

    Raises:
        ExternalToolError: The process could not be started.
    """
    logger.debug("pack.packager.exec", command=" ".join(command))
    try:
        proc = subprocess.Popen(
            command,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            bufsize=1,
            errors="replace",
        )
    except OSError as exc:
        raise ExternalToolError(
            f"The packager '{command[0]}' could not be started: {exc}",
            cause=exc,
        ).with_context(command=" ".join(command)) from exc

    lines: queue.Queue = queue.Queue()
    readers = [
        threading.Thread(target=_pump, args=(STDOUT, proc.stdout, lines), daemon=True),
        threading.Thread(target=_pump, args=(STDERR, proc.stderr, lines), daemon=True),
    ]
    for reader in readers:
        reader.start()

    output: list[tuple[str, str]] = []
    open_streams = len(readers)
    while open_streams:
        item = lines.get()
        if item is None:
            open_streams -= 1
            continue
        output.append(item)
        sink(*item)

    for reader in readers:
        reader.join()
    exit_code = proc.wait()

    logger.debug("pack.packager.exited", exit_code=exit_code)
    return PackagerRun(exit_code=exit_code, command=command, output=output)


class NuGetPackager:
    """``nuget pack`` adapter.

    Parameters
    ----------
    path
        Packager executable.
    sink
        Receives ``(stream, line)`` for every output line.

    Example::

        packager = NuGetPackager("/usr/local/bin/nuget")
        run = packager.pack("obj/shipkit-packing/Web.nuspec", "/src/Web", "obj/shipkit-packed")
    """

    def __init__(self, path: str, sink: OutputSink = log_output) -> None:
        self.path = path
        self.sink = sink

    def build_command(
        self,
        manifest_path: str,
        base_path: str,
        output_directory: str,
        version: str | None = None,
        properties: str | None = None,
        extra_arguments: str | None = None,
    ) -> list[str]:
        command = [
            self.path,
            "pack",
            manifest_path,
            "-NoPackageAnalysis",
            "-BasePath",
            base_path,
            "-OutputDirectory",
            output_directory,
        ]
        if version:
            command += ["-Version", version]
        if properties:
            command += ["-Properties", properties]
        if extra_arguments:
            command += shlex.split(extra_arguments)

        if self.path.lower().endswith(".exe") and sys.platform != "win32":
            command.insert(0, "mono")
        return command

    def pack(
        self,
        manifest_path: str,
        base_path: str,
        output_directory: str,
        version: str | None = None,
        properties: str | None = None,
        extra_arguments: str | None = None,
    ) -> PackagerRun:
        command = self.build_command(
            manifest_path, base_path, output_directory, version, properties, extra_arguments
        )
        return run_streaming(command, cwd=os.path.dirname(manifest_path) or None, sink=self.sink)


def discover_packager(explicit_path: str | None = None, configured_path: str | None = None) -> str:
    """Locate the packager executable.

    Order: ``explicit_path`` when it exists, ``configured_path`` when it
    exists, the first of ``PACKAGER_NAMES`` on ``PATH``, else
    ``DEFAULT_PACKAGER_PATH`` (returned even when missing).
    """
    for candidate in (explicit_path, configured_path):
        if candidate and os.path.isfile(candidate):
            return os.path.abspath(candidate)

    for name in PACKAGER_NAMES:
        found = shutil.which(name)
        if found:
            return found

    return DEFAULT_PACKAGER_PATH
