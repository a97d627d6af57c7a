"""Entry point of the ``shipkit`` command."""

from __future__ import annotations

import typer

from shipkit.cli.pack import app as pack_app

app = typer.Typer(
    name="shipkit",
    help="Assemble deployable NuGet-style packages from build output.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(pack_app, name="pack", help="Build packages and inspect manifests.")


def _print_version(value: bool) -> None:
    if not value:
        return
    from shipkit import __version__

    typer.echo(f"shipkit {__version__}")
    raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Print the shipkit version and exit.",
        callback=_print_version,
        is_eager=True,
    ),
) -> None:
    """shipkit: package a project's build output for deployment."""


if __name__ == "__main__":
    app()
