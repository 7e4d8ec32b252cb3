"""Error codes for CLI exit status.

Each pipeline failure kind maps to one of these codes so CI jobs can tell a
misconfigured release apart from a failed build or a failed upload.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable:
    - 0: Success (including stages that were skipped)
    - 1: Configuration error (bad config, unknown artifact kind, bad template,
         missing abuild tools, missing signing keys)
    - 2: Environment error (run cancelled by a signal)
    - 3: Build error (abuild / abuild-sign failed)
    - 4: Publish error (upload failed)
    - 5: I/O error (file not found, permission denied)
    """

    OK = 0
    CONFIG_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    PUBLISH_ERROR = 4
    IO_ERROR = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK
