from __future__ import annotations

import typer

from relkit.cli.context import build_context
from relkit.services.pipeline import run_release

from ._helpers import report_stage


def release(
    ctx: typer.Context,
    tag: str = typer.Option(..., "--tag", help="Release tag (e.g. v1.2.3)"),
    release_version: str | None = typer.Option(
        None, "--release-version", help="Version (default: tag without leading 'v')"
    ),
    parallelism: int | None = typer.Option(
        None, "--parallelism", "-p", help="Max concurrent units per stage (default: from config)"
    ),
    skip_publish: bool = typer.Option(False, "--skip-publish", help="Package only"),
) -> None:
    """Package apks, then publish."""
    cli = build_context(
        ctx.obj,
        tag=tag,
        version=release_version,
        parallelism=parallelism,
        skip_publish=skip_publish,
    )
    stages = run_release(cli.pipeline, console=cli.console)
    cli.save_artifacts()
    for stage in stages:
        if stage.skipped:
            continue
        report_stage(stage.name, stage.result, cli)
