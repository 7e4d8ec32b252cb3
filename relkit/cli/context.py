from __future__ import annotations

import signal
import threading
from dataclasses import dataclass
from pathlib import Path
from types import FrameType

import typer

from relkit.artifact.manifest import load_manifest, save_manifest
from relkit.core.config import load_config
from relkit.core.context import PipelineContext
from relkit.core.errors import ErrorCode
from relkit.core.result import Err
from relkit.output.console import ConsoleProtocol, RichConsole


@dataclass(frozen=True, slots=True)
class GlobalOptions:
    config_path: Path
    manifest_path: Path
    quiet: bool = False


@dataclass(frozen=True, slots=True)
class CLIContext:
    pipeline: PipelineContext
    console: ConsoleProtocol
    manifest_path: Path

    def save_artifacts(self) -> None:
        saved = save_manifest(self.manifest_path, self.pipeline.artifacts)
        if isinstance(saved, Err):
            self.console.error(saved.error.pretty())
            raise typer.Exit(code=int(ErrorCode.IO_ERROR))


def version_from_tag(tag: str) -> str:
    return tag[1:] if tag.startswith("v") else tag


def build_context(
    options: GlobalOptions,
    *,
    tag: str,
    version: str | None = None,
    parallelism: int | None = None,
    skip_publish: bool = False,
) -> CLIContext:
    console = RichConsole(quiet=options.quiet)

    config_result = load_config(options.config_path)
    if isinstance(config_result, Err):
        console.error(config_result.error.message)
        raise typer.Exit(code=int(ErrorCode.CONFIG_ERROR))

    manifest_result = load_manifest(options.manifest_path)
    if isinstance(manifest_result, Err):
        console.error(manifest_result.error.pretty())
        raise typer.Exit(code=int(manifest_result.error.error_code))

    pipeline = PipelineContext(
        config=config_result.value,
        version=version or version_from_tag(tag),
        tag=tag,
        artifacts=manifest_result.value,
        parallelism=parallelism,
        skip_publish=skip_publish,
    )
    install_cancel_handler(pipeline.cancelled, console)
    return CLIContext(pipeline=pipeline, console=console, manifest_path=options.manifest_path)


def install_cancel_handler(event: threading.Event, console: ConsoleProtocol) -> None:
    """First Ctrl-C cancels in-flight units; the second one aborts."""

    def handler(signum: int, frame: FrameType | None) -> None:
        del frame
        if event.is_set():
            signal.signal(signum, signal.SIG_DFL)
            raise KeyboardInterrupt
        console.warning("cancelling, waiting for running units to stop (Ctrl-C again to abort)")
        event.set()

    signal.signal(signal.SIGINT, handler)
