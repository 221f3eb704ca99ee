from __future__ import annotations

from dataclasses import dataclass

from releaser.core.errors import ErrorCode
from releaser.output.console import ConsoleProtocol, Style


@dataclass(frozen=True, slots=True)
class ConfigurationError:
    """The run cannot start: bad profile, config file or credentials."""

    message: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class ScriptExecutionError:
    """The publish script exited non-zero."""

    command: str
    returncode: int


@dataclass(frozen=True, slots=True)
class PipelineStepError:
    """A pipeline step failed.

    ``rolled_back`` is False when at least one compensation also failed and
    the repository may need manual cleanup.
    """

    step: str
    message: str
    cause: str | None = None
    rolled_back: bool = True


@dataclass(frozen=True, slots=True)
class RemoteError:
    """A call to the hosting API failed."""

    operation: str
    message: str
    hint: str | None = None

    def __str__(self) -> str:
        return f"{self.operation}: {self.message}"


@dataclass(frozen=True, slots=True)
class NotificationError:
    """A release comment could not be posted on ``issue``. Never fatal."""

    issue: str
    message: str


type PublishError = ConfigurationError | ScriptExecutionError | PipelineStepError


def publish_exit_code(error: PublishError) -> int:
    """Process exit status for a failed run.

    A failing publish script propagates its own exit code.
    """
    match error:
        case ScriptExecutionError(returncode=code) if code > 0:
            return code
        case _:
            return int(ErrorCode.FAILURE)


def print_publish_error(error: PublishError, console: ConsoleProtocol) -> None:
    match error:
        case ConfigurationError(message=message, hint=hint):
            console.error(message)
            if hint:
                console.print(f"hint: {hint}", Style.DIM)
        case ScriptExecutionError(command=command, returncode=code):
            console.error(f'publishing script "{command}" failed with exit code {code}')
        case PipelineStepError(step=step, message=message, cause=cause, rolled_back=rolled_back):
            console.error(f"release failed at step {step!r}: {message}")
            if cause:
                console.print(f"cause: {cause}", Style.DIM)
            if not rolled_back:
                console.warning("some changes could not be rolled back; check the repository")
