"""Two-stage release: package apks, then publish.

Packaging runs first so that the apk and APKINDEX artifacts it registers
are visible to the publish stage's filters.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass

from relkit.core.config import load_signing_keys
from relkit.core.context import PipelineContext
from relkit.core.pipe import PipeError, Skipped
from relkit.core.result import Err, Ok, Result
from relkit.output.console import ConsoleProtocol

from .apk import ApkPackager, ApkReport, ToolRunner
from .s3 import PublishReport, S3Publisher, UploaderFactory

__all__ = ["StageResult", "run_apk", "run_publish", "run_release"]


@dataclass(frozen=True, slots=True)
class StageResult:
    name: str
    result: Result[object, PipeError]

    @property
    def skipped(self) -> bool:
        return isinstance(self.result, Ok) and isinstance(self.result.value, Skipped)

    @property
    def failed(self) -> bool:
        return isinstance(self.result, Err)


def run_apk(
    ctx: PipelineContext,
    *,
    console: ConsoleProtocol,
    environ: Mapping[str, str] | None = None,
    runner: ToolRunner | None = None,
) -> Result[ApkReport | Skipped, PipeError]:
    """Run the apk stage, validating the signing keys first."""
    if not ctx.config.alpine:
        return Ok(Skipped("alpine section is not configured"))
    keys = load_signing_keys(environ)
    if isinstance(keys, Err):
        return keys
    return ApkPackager(keys.value, console=console, runner=runner).run(ctx)


def run_publish(
    ctx: PipelineContext,
    *,
    console: ConsoleProtocol,
    uploader_factory: UploaderFactory | None = None,
) -> Result[PublishReport | Skipped, PipeError]:
    return S3Publisher(console=console, uploader_factory=uploader_factory).publish(ctx)


def run_release(
    ctx: PipelineContext,
    *,
    console: ConsoleProtocol,
    environ: Mapping[str, str] | None = None,
    runner: ToolRunner | None = None,
    uploader_factory: UploaderFactory | None = None,
) -> list[StageResult]:
    """Run every stage in order, stopping after the first failed stage."""
    stages: list[tuple[str, Callable[[], Result[object, PipeError]]]] = [
        ("apk", lambda: run_apk(ctx, console=console, environ=environ, runner=runner)),
        ("s3", lambda: run_publish(ctx, console=console, uploader_factory=uploader_factory)),
    ]

    results: list[StageResult] = []
    for name, stage in stages:
        console.header(name)
        stage_result = StageResult(name=name, result=stage())
        results.append(stage_result)
        match stage_result.result:
            case Ok(Skipped(reason=reason)):
                console.warning(f"{name}: skipped: {reason}")
            case Err():
                break
    return results
