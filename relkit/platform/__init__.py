"""Platform abstraction layer."""

from .files import atomic_write_text, copy_executable
from .process import ProcessError, run, which

__all__ = [
    # files
    "atomic_write_text",
    "copy_executable",
    # process
    "ProcessError",
    "run",
    "which",
]
