"""
CLI: ``shipkit pack`` - package assembly commands.

Usage::

    shipkit pack run ./src/Web --out-dir ./src/Web/bin --project-name Web.csproj \\
        --content-list content.txt --binaries-list written.txt --version 1.2.3

    shipkit pack inspect ./src/Web/Web.nuspec     # Show manifest metadata and files

List files hold one item per line, optionally ``item|link``. Blank lines and
lines starting with ``#`` are ignored.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from shipkit.core.errors import ConfigError, ShipkitError

app = typer.Typer(no_args_is_help=True)
console = Console()
err_console = Console(stderr=True)


def _read_list_file(path: Path | None) -> list[str]:
    if path is None:
        return []
    lines = path.read_text(encoding="utf-8-sig").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.lstrip().startswith("#")]


def _fail(error: ShipkitError) -> NoReturn:
    err_console.print(f"[bold red]Error[/bold red] ({error.code}): {error.message}")
    raise typer.Exit(code=1)


# ── Run ──────────────────────────────────────────────────────────────────


@app.command("run")
def pack_run(
    project_dir: Path = typer.Argument(..., exists=True, file_okay=False, help="Project directory."),
    out_dir: Path = typer.Option(..., "--out-dir", "-o", help="Build output directory, relative to the current directory."),
    project_name: str = typer.Option(..., "--project-name", "-n", help="Project file name, e.g. Web.csproj."),
    content_list: Path | None = typer.Option(
        None, "--content-list", exists=True, dir_okay=False, help="File listing content files.",
    ),
    binaries_list: Path | None = typer.Option(
        None, "--binaries-list", exists=True, dir_okay=False, help="File listing files written by the build.",
    ),
    package_version: str | None = typer.Option(None, "--version", help="Package version."),
    manifest: str | None = typer.Option(None, "--manifest", help="Manifest file name in the project root."),
    append_id: str | None = typer.Option(None, "--append-id", help="Suffix appended to the package id."),
    release_notes: str | None = typer.Option(None, "--release-notes", help="Release notes file."),
    app_config: str | None = typer.Option(None, "--app-config", help="Replacement configuration file."),
    config_name: str = typer.Option("app.config", "--config-name", help="File name replaced by --app-config."),
    include_ts: bool = typer.Option(False, "--include-typescript", help="Ship .ts sources next to .js output."),
    ignore_non_root_scripts: bool = typer.Option(
        False, "--ignore-non-root-scripts", help="Do not warn about deployment scripts in subdirectories.",
    ),
    enforce: bool = typer.Option(False, "--enforce-adding-files", help="Add files even when the manifest lists some."),
    publish: bool = typer.Option(False, "--publish", help="Emit TeamCity publishArtifacts messages."),
    nuget: str | None = typer.Option(None, "--nuget", help="Path to the nuget executable."),
    nuget_args: str | None = typer.Option(None, "--nuget-args", help="Extra packager arguments."),
    nuget_properties: str | None = typer.Option(None, "--nuget-properties", help="Packager -Properties value."),
    json_out: bool = typer.Option(False, "--json", help="Output result as JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug diagnostics."),
) -> None:
    """Build a package from a project's build output."""
    from pydantic import ValidationError

    from shipkit.core.logging import configure_logging
    from shipkit.core.settings import ShipkitSettings
    from shipkit.pack.config import PackConfig
    from shipkit.pack.workflow import PackRunner

    settings = ShipkitSettings()
    configure_logging(level="DEBUG" if verbose else settings.log_level, json_format=settings.log_json)

    overrides = {
        "project_dir": str(project_dir.resolve()),
        "out_dir": str(out_dir.resolve()),
        "project_name": project_name,
        "content_files": _read_list_file(content_list),
        "written_files": _read_list_file(binaries_list),
        "package_version": package_version,
        "manifest_file_name": manifest,
        "append_to_package_id": append_id,
        "release_notes_file": release_notes,
        "app_config_file": app_config,
        "config_substitution_name": config_name,
        "include_typescript_sources": include_ts,
        "ignore_non_root_scripts": ignore_non_root_scripts,
        "enforce_adding_files": enforce,
        "publish_to_build_server": publish,
        "packager_path": nuget,
        "packager_arguments": nuget_args,
        "packager_properties": nuget_properties,
    }
    try:
        config = PackConfig.from_env(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        _fail(ConfigError(str(e), cause=e))

    try:
        result = PackRunner(config, settings=settings).run()
    except ShipkitError as e:
        _fail(e)

    if json_out:
        typer.echo(result.model_dump_json(indent=2))
        return

    table = Table(title=f"Packages ({result.package_id})")
    table.add_column("Name", style="cyan")
    table.add_column("Path")
    for package in result.packages:
        table.add_row(package.name, package.path)
    console.print(table)
    console.print(
        f"  files added: {result.files_added}  warnings: {len(result.warnings)}  "
        f"duration: {result.duration_seconds:.1f}s"
    )


# ── Inspect ──────────────────────────────────────────────────────────────


@app.command("inspect")
def pack_inspect(
    manifest_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Manifest (.nuspec) file."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show the metadata and file entries of a manifest."""
    from shipkit.pack.manifest import ManifestDocument, local_name

    try:
        document = ManifestDocument.parse(manifest_file.read_text(encoding="utf-8-sig"))
        metadata = document.metadata().unwrap()
    except ShipkitError as e:
        _fail(e)

    fields = {
        local_name(child.tag): (child.text or "").strip()
        for child in metadata
        if isinstance(child.tag, str)
    }
    entries = document.entries()

    if json_out:
        payload = {
            "metadata": fields,
            "files": [{"src": e.source, "target": e.target} for e in entries],
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    table = Table(title="Metadata")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for name, value in fields.items():
        table.add_row(name, value)
    console.print(table)

    if not entries:
        console.print("[dim]No <files> entries.[/]")
        return

    files = Table(title=f"Files ({len(entries)})")
    files.add_column("Source")
    files.add_column("Target", style="green")
    for entry in entries:
        files.add_row(entry.source, entry.target)
    console.print(files)
