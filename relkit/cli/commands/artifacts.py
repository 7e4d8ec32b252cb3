from __future__ import annotations

import typer

from relkit.artifact.manifest import load_manifest
from relkit.core.errors import ErrorCode
from relkit.core.result import Err
from relkit.output.console import RichConsole, Style
from relkit.services.s3 import artifact_filter


def artifacts(
    ctx: typer.Context,
    kind: list[str] = typer.Option(
        [], "--kind", "-k", help="Only show these kinds (archive, binary, apk, ...)"
    ),
) -> None:
    """List the artifacts registered in the manifest."""
    console = RichConsole(quiet=ctx.obj.quiet)
    loaded = load_manifest(ctx.obj.manifest_path)
    if isinstance(loaded, Err):
        console.error(loaded.error.pretty())
        raise typer.Exit(code=int(loaded.error.error_code))

    registry = loaded.value
    if kind:
        selected = artifact_filter(tuple(kind))
        if isinstance(selected, Err):
            console.error(selected.error.pretty())
            raise typer.Exit(code=int(ErrorCode.CONFIG_ERROR))
        registry = registry.filter(selected.value)

    items = registry.list()
    if not items:
        console.print("no artifacts", Style.DIM)
        return
    for a in items:
        platform = "/".join(p for p in (a.os, a.arch, a.arch_variant) if p) or "-"
        console.print(f"{a.type.value:<18} {platform:<16} {a.name}  {a.path}")
