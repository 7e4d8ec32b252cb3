"""Subprocess execution with Result-based error handling.

External tools (abuild, abuild-sign) are run with stdout and stderr merged,
so the full tool transcript can be attached to the error when they fail.
A running tool is killed as soon as the caller's cancellation event is set.

Usage:
    result = run(["abuild", "-r"], cwd=workdir, env=env, cancel=ctx.cancelled)
    match result:
        case Ok(output):
            print(output)
        case Err(error):
            print(f"{error}:\\n{error.stdout}")
"""

from __future__ import annotations

import shutil
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path

from relkit.core.result import Err, Ok, Result

__all__ = ["ProcessError", "run", "which", "CANCELLED_RETURNCODE"]

CANCELLED_RETURNCODE = -2

_POLL_SECONDS = 0.2


@dataclass(frozen=True, slots=True)
class ProcessError:
    """Error from a failed subprocess execution.

    Attributes:
        command: The command that was executed.
        returncode: Exit code; -1 if the process could not run,
            CANCELLED_RETURNCODE if it was killed on cancellation.
        stdout: Combined stdout+stderr captured so far.
        stderr: Launch/timeout details not produced by the process itself.
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def cancelled(self) -> bool:
        return self.returncode == CANCELLED_RETURNCODE

    @property
    def output(self) -> str:
        """Everything worth showing to a user, process output first."""
        return "\n".join(part for part in (self.stdout.rstrip(), self.stderr.strip()) if part)

    def __str__(self) -> str:
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        return f"{cmd_str} failed (exit {self.returncode})"


def which(name: str) -> str | None:
    """Locate an executable on PATH."""
    return shutil.which(name)


def run(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    cancel: threading.Event | None = None,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Execute a command and return its combined output or an error.

    Args:
        cmd: Command and arguments to execute.
        cwd: Working directory for the command.
        env: Full environment (uses current env if None).
        cancel: Kill the process once this event is set.
        timeout: Maximum seconds to wait (None for no limit).

    Returns:
        Ok(output) on success, Err(ProcessError) on failure.
    """
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=str(cwd),
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
        )
    except OSError as e:
        return Err(ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr=str(e)))

    waited = 0.0
    while True:
        try:
            output, _ = proc.communicate(timeout=_POLL_SECONDS)
            break
        except subprocess.TimeoutExpired:
            waited += _POLL_SECONDS
            stop_reason: str | None = None
            if cancel is not None and cancel.is_set():
                stop_reason = "cancelled"
            elif timeout is not None and waited >= timeout:
                stop_reason = f"Command timed out after {timeout}s"
            if stop_reason is None:
                continue
            proc.kill()
            output, _ = proc.communicate()
            return Err(
                ProcessError(
                    command=tuple(cmd),
                    returncode=CANCELLED_RETURNCODE if stop_reason == "cancelled" else -1,
                    stdout=output or "",
                    stderr=stop_reason,
                )
            )

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=proc.returncode,
                stdout=output or "",
                stderr="",
            )
        )
    return Ok(output or "")
