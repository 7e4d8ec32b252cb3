"""Result type for explicit error handling.

Every fallible step of the pipeline (config loading, template resolution,
tool invocation, uploads) returns a Result instead of raising, so fan-out
units can hand their failure back to the task group as a plain value.

Usage:
    def resolve(text: str) -> Result[str, PipeError]:
        if not text:
            return Err(PipeError(kind="template", message="empty template"))
        return Ok(text)

    match resolve("releases/{{ .Version }}"):
        case Ok(value):
            print(value)
        case Err(error):
            print(error.message)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeGuard


@dataclass(frozen=True, slots=True)
class Ok[T]:
    """Successful result carrying a value."""

    value: T

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err[E]:
    """Failed result carrying an error value."""

    error: E

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


type Result[T, E] = Ok[T] | Err[E]


def is_ok[T, E](result: Result[T, E]) -> TypeGuard[Ok[T]]:
    return isinstance(result, Ok)


def is_err[T, E](result: Result[T, E]) -> TypeGuard[Err[E]]:
    return isinstance(result, Err)
