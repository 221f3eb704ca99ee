"""Subprocess execution with Result-based error handling.

Two flavours:

- ``run``: capture output (git, gh). Returns stdout or a ProcessError.
- ``run_streaming``: run a shell command and forward its stdout/stderr to
  the parent's streams byte for byte while it runs (publish scripts).

Usage:
    result = run(["git", "tag", "--list"], cwd=repo_root)
    match result:
        case Ok(stdout):
            tags = stdout.splitlines()
        case Err(error):
            print(f"Failed: {error.stderr}")
"""

from __future__ import annotations

import os
import subprocess
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import IO, BinaryIO, TextIO

from releaser.core.result import Err, Ok, Result

__all__ = ["ProcessError", "run", "run_streaming"]

_CHUNK_SIZE = 65536


@dataclass(frozen=True, slots=True)
class ProcessError:
    """Error from a failed subprocess execution.

    Attributes:
        command: The command that was executed.
        returncode: The exit code of the process (-1 if it never ran).
        stdout: Standard output (may be empty).
        stderr: Standard error (contains error details).
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        """Format error for display."""
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        return f"{cmd_str} failed (exit {self.returncode})"


def run(
    cmd: list[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Execute a command and return stdout or error.

    Args:
        cmd: Command and arguments to execute.
        cwd: Working directory for the command.
        env: Environment variables (uses current env if None).
        timeout: Maximum seconds to wait (None for no limit).

    Returns:
        Ok(stdout) on success, Err(ProcessError) on failure.
    """
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=dict(env) if env is not None else None,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout=e.stdout if isinstance(e.stdout, str) else "",
                stderr=f"Command timed out after {timeout}s",
            )
        )
    except OSError as e:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout="",
                stderr=str(e),
            )
        )

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=proc.returncode,
                stdout=proc.stdout,
                stderr=proc.stderr,
            )
        )

    return Ok(proc.stdout)


def _pump(source: IO[bytes], sink: BinaryIO) -> None:
    # Chunks, not lines: prompts without a newline must show up immediately.
    fd = source.fileno()
    while chunk := os.read(fd, _CHUNK_SIZE):
        sink.write(chunk)
        sink.flush()
    source.close()


def _binary_sink(stream: TextIO) -> BinaryIO:
    stream.flush()
    return stream.buffer


def run_streaming(
    command: str,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    *,
    stdout: BinaryIO | None = None,
    stderr: BinaryIO | None = None,
) -> Result[None, ProcessError]:
    """Run a shell command, forwarding its output live.

    Bytes are copied to ``stdout``/``stderr`` (default: the buffers behind
    the current ``sys.stdout``/``sys.stderr``) as soon as the child writes
    them and flushed immediately. Nothing is decoded or captured, so line
    endings and non-UTF-8 output pass through untouched.

    Args:
        command: Shell command line.
        cwd: Working directory for the command.
        env: Full environment for the child (uses current env if None).
        stdout: Destination for the child's standard output.
        stderr: Destination for the child's standard error.

    Returns:
        Ok(None) on exit code 0, Err(ProcessError) otherwise.
    """
    out_sink = stdout if stdout is not None else _binary_sink(sys.stdout)
    err_sink = stderr if stderr is not None else _binary_sink(sys.stderr)

    try:
        proc = subprocess.Popen(
            command,
            shell=True,
            cwd=str(cwd),
            env=dict(env) if env is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
        )
    except OSError as e:
        return Err(ProcessError(command=(command,), returncode=-1, stdout="", stderr=str(e)))

    assert proc.stdout is not None and proc.stderr is not None
    pumps = [
        threading.Thread(target=_pump, args=(proc.stdout, out_sink), daemon=True),
        threading.Thread(target=_pump, args=(proc.stderr, err_sink), daemon=True),
    ]
    for pump in pumps:
        pump.start()

    returncode = proc.wait()
    for pump in pumps:
        pump.join()

    if returncode != 0:
        return Err(ProcessError(command=(command,), returncode=returncode, stdout="", stderr=""))
    return Ok(None)
