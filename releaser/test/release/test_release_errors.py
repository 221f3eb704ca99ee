from __future__ import annotations

import pytest

from releaser.output.console import MockConsole, Style
from releaser.release.errors import (
    ConfigurationError,
    PipelineStepError,
    PublishError,
    RemoteError,
    ScriptExecutionError,
    print_publish_error,
    publish_exit_code,
)


@pytest.mark.parametrize(
    ("error", "code"),
    [
        (ConfigurationError(message="no token"), 1),
        (PipelineStepError(step="push", message="rejected"), 1),
        (ScriptExecutionError(command="npm publish", returncode=7), 7),
        (ScriptExecutionError(command="killed", returncode=-9), 1),
    ],
)
def test_exit_code(error: PublishError, code: int) -> None:
    assert publish_exit_code(error) == code


def test_configuration_error_with_hint() -> None:
    console = MockConsole()

    print_publish_error(ConfigurationError(message="bad", hint="do this"), console)

    assert console.errors == ["bad"]
    assert console.of_style(Style.DIM) == ["hint: do this"]


def test_script_error() -> None:
    console = MockConsole()

    print_publish_error(ScriptExecutionError(command="make publish", returncode=2), console)

    assert console.errors == ['publishing script "make publish" failed with exit code 2']


def test_step_error_not_rolled_back() -> None:
    console = MockConsole()
    error = PipelineStepError(
        step="push", message="Failed to push", cause="non-fast-forward", rolled_back=False
    )

    print_publish_error(error, console)

    assert console.errors == ["release failed at step 'push': Failed to push"]
    assert console.of_style(Style.DIM) == ["cause: non-fast-forward"]
    assert len(console.warnings) == 1


def test_remote_error_str() -> None:
    assert str(RemoteError(operation="create release", message="HTTP 422")) == (
        "create release: HTTP 422"
    )
