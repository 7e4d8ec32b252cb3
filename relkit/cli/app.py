from __future__ import annotations

from pathlib import Path

import typer

from relkit import __version__
from relkit.cli.commands.apk import apk
from relkit.cli.commands.artifacts import artifacts
from relkit.cli.commands.publish import publish
from relkit.cli.commands.release import release
from relkit.cli.context import GlobalOptions


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(apk)
app.command()(publish)
app.command()(release)
app.command()(artifacts)


def _show_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_show_version, is_eager=True, help="Show version and exit."
    ),
    config: Path = typer.Option(Path("relkit.toml"), "--config", "-c", help="Release config"),
    artifacts_path: Path = typer.Option(
        Path("dist/artifacts.json"), "--artifacts", help="Artifact manifest (read and updated)"
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Hide per-unit progress"),
) -> None:
    del version
    ctx.obj = GlobalOptions(config_path=config, manifest_path=artifacts_path, quiet=quiet)


def main() -> None:
    app()
