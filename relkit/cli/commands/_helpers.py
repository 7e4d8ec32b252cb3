"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

from relkit.core.pipe import PipeError, Skipped
from relkit.core.result import Err, Ok, Result
from relkit.output.console import Style

if TYPE_CHECKING:
    from relkit.cli.context import CLIContext


def report_stage(name: str, result: Result[object, PipeError], ctx: CLIContext) -> None:
    """Print the outcome of a stage; exit with the error's code on failure."""
    match result:
        case Ok(Skipped(reason=reason)):
            ctx.console.warning(f"{name}: skipped: {reason}")
        case Ok():
            ctx.console.success(f"{name}: done")
        case Err(error):
            ctx.console.error(f"{name}: {error.message}")
            for cause in error.leaves() if error.causes else ():
                ctx.console.print(f"  - {cause.pretty()}", Style.DIM)
            if error.hint:
                ctx.console.print(f"hint: {error.hint}", Style.DIM)
            if error.output and not error.causes:
                ctx.console.print(error.output, Style.DIM)
            raise typer.Exit(code=int(error.error_code))
