"""Tests for releaser.platform.process module."""

from __future__ import annotations

import io
import os
import sys
import threading
import time
from pathlib import Path

import pytest

from releaser.core.result import Err, Ok
from releaser.platform.process import ProcessError, run, run_streaming


def _py(code: str) -> str:
    return f'"{sys.executable}" -c "{code}"'


class TestProcessError:
    """Test ProcessError dataclass."""

    def test_str_short_command(self) -> None:
        error = ProcessError(command=("git", "status"), returncode=1, stdout="", stderr="")
        assert str(error) == "git status failed (exit 1)"

    def test_str_long_command_truncated(self) -> None:
        error = ProcessError(
            command=("git", "push", "--delete", "origin", "v1.0.0"),
            returncode=128,
            stdout="",
            stderr="",
        )
        assert str(error) == "git push --delete ... failed (exit 128)"

    def test_frozen(self) -> None:
        error = ProcessError(("cmd",), 1, "", "")
        with pytest.raises(AttributeError):
            error.returncode = 2  # type: ignore[misc]


class TestRun:
    """Test run function."""

    def test_success_returns_stdout(self, tmp_path: Path) -> None:
        result = run([sys.executable, "-c", "print('hello')"], cwd=tmp_path)

        assert isinstance(result, Ok)
        assert result.value.strip() == "hello"

    def test_failure_returns_error(self, tmp_path: Path) -> None:
        result = run(
            [sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(42)"],
            cwd=tmp_path,
        )

        assert isinstance(result, Err)
        assert result.error.returncode == 42
        assert result.error.stderr == "bad"

    def test_command_not_found(self, tmp_path: Path) -> None:
        result = run(["nonexistent_command_12345"], cwd=tmp_path)

        assert isinstance(result, Err)
        assert result.error.returncode == -1

    def test_env_is_passed(self, tmp_path: Path) -> None:
        result = run(
            [sys.executable, "-c", "import os; print(os.environ['RELEASE_VERSION'])"],
            cwd=tmp_path,
            env={"RELEASE_VERSION": "1.2.0", "PATH": ""},
        )

        assert isinstance(result, Ok)
        assert result.value.strip() == "1.2.0"

    def test_timeout(self, tmp_path: Path) -> None:
        result = run(
            [sys.executable, "-c", "import time; time.sleep(5)"], cwd=tmp_path, timeout=0.2
        )

        assert isinstance(result, Err)
        assert result.error.returncode == -1
        assert "timed out" in result.error.stderr


class TestRunStreaming:
    """Publish scripts stream their output as they run."""

    def test_forwards_output_in_order(self, tmp_path: Path) -> None:
        out = io.BytesIO()
        err = io.BytesIO()

        result = run_streaming(
            _py("import sys; [print(f'line {i}', flush=True) for i in range(3)]; "
                "sys.stderr.write('warn\\n')"),
            cwd=tmp_path,
            stdout=out,
            stderr=err,
        )

        assert isinstance(result, Ok)
        assert out.getvalue() == b"line 0\nline 1\nline 2\n"
        assert err.getvalue() == b"warn\n"

    def test_line_endings_are_kept(self, tmp_path: Path) -> None:
        out = io.BytesIO()

        result = run_streaming(
            _py("import sys; sys.stdout.write('a\\r\\nb\\rc\\n')"), cwd=tmp_path, stdout=out
        )

        assert isinstance(result, Ok)
        assert out.getvalue() == b"a\r\nb\rc\n"

    def test_undecodable_bytes_are_kept(self, tmp_path: Path) -> None:
        out = io.BytesIO()

        result = run_streaming(
            _py("import sys; sys.stdout.buffer.write(bytes([0xff, 0x41]))"),
            cwd=tmp_path,
            stdout=out,
        )

        assert isinstance(result, Ok)
        assert out.getvalue() == b"\xffA"

    def test_partial_line_is_forwarded_while_running(self, tmp_path: Path) -> None:
        # The child prints a prompt without a newline, then waits for "go".
        out = io.BytesIO()
        script = _py(
            "import os, sys, time; sys.stdout.write('Enter OTP: '); sys.stdout.flush(); "
            "[time.sleep(0.05) for _ in range(400) if not os.path.exists('go')]"
        )
        outcome: list[object] = []
        runner = threading.Thread(
            target=lambda: outcome.append(run_streaming(script, cwd=tmp_path, stdout=out))
        )
        runner.start()

        deadline = time.monotonic() + 10
        while out.getvalue() != b"Enter OTP: " and time.monotonic() < deadline:
            time.sleep(0.02)
        seen = out.getvalue()
        still_running = runner.is_alive()

        (tmp_path / "go").write_text("", encoding="utf-8")
        runner.join(timeout=30)

        assert seen == b"Enter OTP: "
        assert still_running
        assert outcome == [Ok(None)]

    def test_defaults_to_process_streams(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        result = run_streaming(_py("print('release script input: 1.0.0')"), cwd=tmp_path)

        assert isinstance(result, Ok)
        assert capsys.readouterr().out == "release script input: 1.0.0\n"

    def test_uses_given_environment(self, tmp_path: Path) -> None:
        out = io.BytesIO()
        env = {**os.environ, "RELEASE_VERSION": "0.1.0"}

        result = run_streaming(
            _py("import os; print(os.environ['RELEASE_VERSION'])"),
            cwd=tmp_path,
            env=env,
            stdout=out,
        )

        assert isinstance(result, Ok)
        assert out.getvalue() == b"0.1.0\n"

    def test_failure_reports_exit_code(self, tmp_path: Path) -> None:
        result = run_streaming(_py("import sys; sys.exit(3)"), cwd=tmp_path, stdout=io.BytesIO())

        assert isinstance(result, Err)
        assert result.error.returncode == 3
