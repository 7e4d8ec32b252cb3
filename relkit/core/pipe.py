"""Error and outcome types shared by every pipeline stage.

This format is stable across the registry, the task group adapters and the
stages, and can be rendered by the CLI without importing stage internals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .errors import ErrorCode
from .taskgroup import TaskGroupError, UnitCrash

type PipeErrorKind = Literal[
    "configuration",
    "unknown_artifact_type",
    "template",
    "external_tool",
    "filesystem",
    "remote_storage",
    "duplicate_artifact",
    "cancelled",
    "crashed",
    "fanout_failed",
]

_EXIT_CODES: dict[str, ErrorCode] = {
    "configuration": ErrorCode.CONFIG_ERROR,
    "unknown_artifact_type": ErrorCode.CONFIG_ERROR,
    "template": ErrorCode.CONFIG_ERROR,
    "external_tool": ErrorCode.BUILD_ERROR,
    "filesystem": ErrorCode.IO_ERROR,
    "remote_storage": ErrorCode.PUBLISH_ERROR,
    "duplicate_artifact": ErrorCode.BUILD_ERROR,
    "cancelled": ErrorCode.ENV_ERROR,
    "crashed": ErrorCode.BUILD_ERROR,
}


@dataclass(frozen=True, slots=True)
class PipeError:
    """Canonical pipeline error payload.

    Attributes:
        kind: Failure category.
        message: One-line description.
        hint: Optional remediation hint.
        exit_code: Exit status of an external tool (external_tool only).
        output: Combined stdout+stderr of an external tool, verbatim.
        causes: Per-unit errors combined by a fan-out (fanout_failed only).
    """

    kind: PipeErrorKind
    message: str
    hint: str | None = None
    exit_code: int | None = None
    output: str | None = None
    causes: tuple[PipeError, ...] = ()

    def pretty(self) -> str:
        text = self.message
        if self.hint:
            text = f"{text} (hint: {self.hint})"
        if self.output:
            text = f"{text}:\n{self.output.rstrip()}"
        return text

    def leaves(self) -> tuple[PipeError, ...]:
        """The innermost errors, with fan-out wrappers removed."""
        if not self.causes:
            return (self,)
        return tuple(leaf for cause in self.causes for leaf in cause.leaves())

    @property
    def error_code(self) -> ErrorCode:
        if self.kind == "fanout_failed" and self.causes:
            return max(c.error_code for c in self.causes)
        return _EXIT_CODES.get(self.kind, ErrorCode.BUILD_ERROR)

    def __str__(self) -> str:
        if not self.causes:
            return self.pretty()
        lines = [self.message]
        lines.extend(f"  - {c.pretty()}" for c in self.causes)
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class Skipped:
    """A stage that is not configured; a no-op, not a failure."""

    reason: str


def from_group(message: str, error: TaskGroupError[PipeError]) -> PipeError:
    """Fold every unit failure of one fan-out into a single error."""
    causes: list[PipeError] = []
    for failure in error.failures:
        match failure.error:
            case UnitCrash() as crash:
                causes.append(PipeError(kind="crashed", message=str(crash)))
            case PipeError() as cause:
                causes.append(cause)
    return PipeError(
        kind="fanout_failed",
        message=f"{message}: {len(causes)} of {error.scheduled} failed",
        causes=tuple(causes),
    )
