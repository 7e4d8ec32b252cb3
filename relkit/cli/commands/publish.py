from __future__ import annotations

import typer

from relkit.cli.context import build_context
from relkit.services.pipeline import run_publish

from ._helpers import report_stage


def publish(
    ctx: typer.Context,
    tag: str = typer.Option(..., "--tag", help="Release tag (e.g. v1.2.3)"),
    release_version: str | None = typer.Option(
        None, "--release-version", help="Version (default: tag without leading 'v')"
    ),
    parallelism: int | None = typer.Option(
        None, "--parallelism", "-p", help="Max concurrent uploads (default: from config)"
    ),
    skip_publish: bool = typer.Option(False, "--skip-publish", help="Do not upload anything"),
) -> None:
    """Upload registered artifacts to the configured S3 destinations."""
    cli = build_context(
        ctx.obj,
        tag=tag,
        version=release_version,
        parallelism=parallelism,
        skip_publish=skip_publish,
    )
    report_stage("s3", run_publish(cli.pipeline, console=cli.console), cli)
