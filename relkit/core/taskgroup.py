"""Bounded fan-out of independent units of work.

Every stage that does work per artifact or per architecture schedules it
through a BoundedTaskGroup. The group differs from a plain thread pool in
two ways:

- ``go`` blocks the scheduling thread while ``limit`` units are in flight,
  so a stage never queues more work than it can run.
- A failing unit never stops its siblings. Every unit runs to completion
  and ``wait`` reports all failures at once, in scheduling order.

Units are zero-argument callables returning a Result. An ``Err`` is recorded
as a failure; an exception escaping a unit is recorded as a ``UnitCrash``
instead of tearing down the group.

Units run on threads, so a unit stuck in a blocking call cannot be stopped
from the outside. Cancellation is cooperative: units check the pipeline's
cancellation event at their blocking calls.

Usage:
    group: BoundedTaskGroup[PipeError] = BoundedTaskGroup(4)
    for artifact in artifacts:
        group.go(lambda a=artifact: upload(a))
    match group.wait():
        case Ok():
            ...
        case Err(error):
            for failure in error.failures:
                print(failure.index, failure.error)
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

from .result import Err, Ok, Result

__all__ = [
    "BoundedTaskGroup",
    "TaskGroupError",
    "UnitCrash",
    "UnitFailure",
]


@dataclass(frozen=True, slots=True)
class UnitCrash:
    """An exception that escaped a unit."""

    exception: BaseException

    def __str__(self) -> str:
        return f"unit crashed: {type(self.exception).__name__}: {self.exception}"


@dataclass(frozen=True, slots=True)
class UnitFailure[E]:
    """One failed unit.

    Attributes:
        index: Position of the unit in scheduling order (0-based).
        error: The unit's Err value, or UnitCrash if it raised.
    """

    index: int
    error: E | UnitCrash


@dataclass(frozen=True, slots=True)
class TaskGroupError[E]:
    """Every failure of one fan-out."""

    failures: tuple[UnitFailure[E], ...]
    scheduled: int

    def __str__(self) -> str:
        parts = [f"unit {f.index}: {f.error}" for f in self.failures]
        return f"{len(self.failures)} of {self.scheduled} units failed: " + "; ".join(parts)


class BoundedTaskGroup[E]:
    """Run units concurrently with at most ``limit`` in flight.

    ``limit <= 0`` means unbounded. One group serves one fan-out: schedule
    with ``go``, then call ``wait`` exactly once.
    """

    def __init__(self, limit: int) -> None:
        self._slots = threading.BoundedSemaphore(limit) if limit > 0 else None
        self._lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._failures: list[UnitFailure[E]] = []
        self._waited = False

    def go(self, unit: Callable[[], Result[object, E]]) -> None:
        """Schedule one unit, blocking while the group is at its limit."""
        with self._lock:
            if self._waited:
                raise RuntimeError("BoundedTaskGroup.go() called after wait()")
            index = len(self._threads)
            thread = threading.Thread(
                target=self._run,
                args=(index, unit),
                name=f"relkit-unit-{index}",
                daemon=True,
            )
            self._threads.append(thread)

        if self._slots is not None:
            self._slots.acquire()
        thread.start()

    def _run(self, index: int, unit: Callable[[], Result[object, E]]) -> None:
        try:
            result = unit()
        except BaseException as exc:  # noqa: BLE001 - recorded, reported by wait()
            self._record(UnitFailure(index=index, error=UnitCrash(exc)))
        else:
            if isinstance(result, Err):
                self._record(UnitFailure(index=index, error=result.error))
        finally:
            if self._slots is not None:
                self._slots.release()

    def _record(self, failure: UnitFailure[E]) -> None:
        with self._lock:
            self._failures.append(failure)

    def wait(self) -> Result[None, TaskGroupError[E]]:
        """Block until every scheduled unit has finished.

        Returns:
            Ok(None) if no unit failed, else Err listing every failure.
        """
        with self._lock:
            self._waited = True
            threads = list(self._threads)

        for thread in threads:
            thread.join()

        with self._lock:
            failures = sorted(self._failures, key=lambda f: f.index)

        if failures:
            return Err(TaskGroupError(failures=tuple(failures), scheduled=len(threads)))
        return Ok(None)
