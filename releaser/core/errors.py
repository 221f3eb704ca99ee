"""Process exit codes for the CLI.

The publish command has a deliberately small exit surface: success (which
includes dry-run completion and "nothing to release") or failure. A failing
publish script is the one exception; its own exit code is passed through.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable.
    """

    OK = 0
    FAILURE = 1

