from __future__ import annotations

import typer

from relkit.cli.context import build_context
from relkit.services.pipeline import run_apk

from ._helpers import report_stage


def apk(
    ctx: typer.Context,
    tag: str = typer.Option(..., "--tag", help="Release tag (e.g. v1.2.3)"),
    release_version: str | None = typer.Option(
        None, "--release-version", help="Version (default: tag without leading 'v')"
    ),
    parallelism: int | None = typer.Option(
        None, "--parallelism", "-p", help="Max concurrent builds (default: from config)"
    ),
) -> None:
    """Build, sign and register apk packages for every linux architecture."""
    cli = build_context(ctx.obj, tag=tag, version=release_version, parallelism=parallelism)
    result = run_apk(cli.pipeline, console=cli.console)
    cli.save_artifacts()
    report_stage("apk", result, cli)
