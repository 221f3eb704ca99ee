"""Git repository abstraction.

This module provides the Repository class: the git plumbing a release needs
(identity, tags, history since a commit, and the handful of mutations a
release performs and may have to undo). All operations return Result types.

Usage:
    repo = Repository(Path("/path/to/repo"))

    match repo.commits_since(latest.hash):
        case Ok(commits):
            print(f"found {len(commits)} new commits")
        case Err(e):
            print(f"Error: {e.message}")

    match repo.create_tag("v1.3.0"):
        case Ok(tag):
            print(f"Tagged: {tag}")
        case Err(e):
            print(f"Tag failed: {e.message}")
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from releaser.core.result import Err, Ok, Result
from releaser.platform.process import ProcessError
from releaser.platform.process import run as run_process
from releaser.release.model import RawCommit, RepoInfo

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# Unit/record separators keep multi-line bodies intact in `git log` output.
_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"
_LOG_FORMAT = "--format=%H%x1f%s%x1f%b%x1e"

_REMOTE_URL_RE = re.compile(
    r"^(?:[\w.-]+@[^:/]+:|(?:ssh|git|https?)://(?:[^@/]+@)?[^/]+/)"
    r"(?P<owner>[^/]+)/(?P<name>[^/]+?)(?:\.git)?/?$"
)

__all__ = [
    "GitError",
    "Repository",
    "VersionControl",
    "parse_remote_url",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


class VersionControl(Protocol):
    """Git operations the release pipeline depends on."""

    def info(self) -> Result[RepoInfo, GitError]: ...

    def current_branch(self) -> Result[str, GitError]: ...

    def list_tags(self) -> Result[tuple[str, ...], GitError]: ...

    def tag_hash(self, tag: str) -> Result[str, GitError]: ...

    def commits_since(self, since: str | None) -> Result[tuple[RawCommit, ...], GitError]: ...

    def commit(self, files: Sequence[str], message: str) -> Result[str, GitError]: ...

    def create_tag(self, tag: str) -> Result[str, GitError]: ...

    def push_tag(self, tag: str) -> Result[None, GitError]: ...

    def push(self, branch: str) -> Result[None, GitError]: ...

    def has_diff(self) -> Result[bool, GitError]: ...

    def stash(self) -> Result[None, GitError]: ...

    def stash_pop(self) -> Result[None, GitError]: ...

    def reset_hard(self, count: int = 1) -> Result[None, GitError]: ...

    def delete_tag(self, tag: str) -> Result[None, GitError]: ...

    def delete_remote_tag(self, tag: str) -> Result[None, GitError]: ...


def parse_remote_url(url: str) -> RepoInfo | None:
    """Extract owner/name from an scp-like, ssh or https remote URL."""
    m = _REMOTE_URL_RE.match(url.strip())
    if m is None:
        return None
    return RepoInfo(owner=m.group("owner"), name=m.group("name"), remote=url.strip())


def _parse_log(output: str) -> tuple[RawCommit, ...]:
    commits: list[RawCommit] = []
    for record in output.split(_RECORD_SEP):
        record = record.strip("\n")
        if not record.strip():
            continue
        parts = record.split(_FIELD_SEP)
        if len(parts) < 2:
            continue
        body = parts[2].strip() if len(parts) > 2 else ""
        commits.append(RawCommit(hash=parts[0].strip(), subject=parts[1], body=body or None))
    return tuple(commits)


class Repository:
    """Git repository abstraction.

    Attributes:
        path: Path to the repository root
        remote: Remote that releases are pushed to
    """

    def __init__(self, path: Path, remote: str = "origin") -> None:
        self.path = path
        self.remote = remote

    def info(self) -> Result[RepoInfo, GitError]:
        """Owner, name and URL of the release remote."""
        result = self._run(["remote", "get-url", self.remote])
        if isinstance(result, Err):
            return Err(self._error("remote get-url", result.error, "no remote configured"))
        info = parse_remote_url(result.value)
        if info is None:
            return Err(
                GitError(
                    command="remote get-url",
                    message=f"cannot parse remote URL: {result.value.strip()}",
                )
            )
        return Ok(info)

    def current_branch(self) -> Result[str, GitError]:
        """Get current branch name (detached HEAD is an error)."""
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"])
        match result:
            case Err(e):
                return Err(self._error("rev-parse", e, "cannot determine branch"))
            case Ok(stdout):
                branch = stdout.strip()
                if branch == "HEAD":
                    return Err(GitError(command="rev-parse", message="detached HEAD"))
                return Ok(branch)

    def list_tags(self) -> Result[tuple[str, ...], GitError]:
        result = self._run(["tag", "--list"])
        match result:
            case Err(e):
                return Err(self._error("tag --list", e, "cannot list tags"))
            case Ok(stdout):
                return Ok(tuple(line.strip() for line in stdout.splitlines() if line.strip()))

    def tag_hash(self, tag: str) -> Result[str, GitError]:
        """Hash of the commit ``tag`` points at."""
        result = self._run(["rev-list", "-n", "1", tag])
        match result:
            case Err(e):
                return Err(self._error("rev-list", e, f"unknown tag {tag}"))
            case Ok(stdout):
                return Ok(stdout.strip())

    def commits_since(self, since: str | None) -> Result[tuple[RawCommit, ...], GitError]:
        """Commits reachable from HEAD but not from ``since``, newest first.

        ``since=None`` returns the whole history.
        """
        args = ["log", _LOG_FORMAT]
        if since:
            args.append(f"{since}..HEAD")
        result = self._run(args)
        match result:
            case Err(e):
                return Err(self._error("log", e, "cannot read history"))
            case Ok(stdout):
                return Ok(_parse_log(stdout))

    def commit(self, files: Sequence[str], message: str) -> Result[str, GitError]:
        """Stage ``files`` and commit them. Returns the new HEAD hash."""
        if files:
            added = self._run(["add", "--", *files])
            if isinstance(added, Err):
                return Err(self._error("add", added.error, "add failed"))

        committed = self._run(["commit", "-m", message])
        if isinstance(committed, Err):
            return Err(self._error("commit", committed.error, "commit failed"))

        head = self._run(["rev-parse", "HEAD"])
        match head:
            case Err(e):
                return Err(self._error("rev-parse", e, "cannot resolve HEAD"))
            case Ok(stdout):
                return Ok(stdout.strip())

    def create_tag(self, tag: str) -> Result[str, GitError]:
        return self._simple(["tag", tag], "tag").map(lambda _: tag)

    def push_tag(self, tag: str) -> Result[None, GitError]:
        return self._simple(["push", self.remote, tag], "push tag")

    def push(self, branch: str) -> Result[None, GitError]:
        return self._simple(["push", self.remote, branch], "push")

    def has_diff(self) -> Result[bool, GitError]:
        """True if tracked files differ from HEAD (staged or not)."""
        result = self._run(["diff", "HEAD"])
        match result:
            case Err(e):
                return Err(self._error("diff", e, "diff failed"))
            case Ok(stdout):
                return Ok(stdout.strip() != "")

    def stash(self) -> Result[None, GitError]:
        return self._simple(["stash"], "stash")

    def stash_pop(self) -> Result[None, GitError]:
        return self._simple(["stash", "pop"], "stash pop")

    def reset_hard(self, count: int = 1) -> Result[None, GitError]:
        """Drop the last ``count`` commits and their changes."""
        return self._simple(["reset", "--hard", f"HEAD~{count}"], "reset --hard")

    def delete_tag(self, tag: str) -> Result[None, GitError]:
        return self._simple(["tag", "-d", tag], "tag -d")

    def delete_remote_tag(self, tag: str) -> Result[None, GitError]:
        return self._simple(["push", "--delete", self.remote, tag], "push --delete")

    def _simple(self, args: list[str], command: str) -> Result[None, GitError]:
        result = self._run(args)
        if isinstance(result, Err):
            return Err(self._error(command, result.error, f"{command} failed"))
        return Ok(None)

    @staticmethod
    def _error(command: str, e: ProcessError, fallback: str) -> GitError:
        return GitError(
            command=command,
            message=e.stderr.strip() or e.stdout.strip() or fallback,
            returncode=e.returncode,
        )

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        command = args[0] if args else ""
        timeout = (
            _GIT_NETWORK_TIMEOUT_SECONDS
            if command in {"fetch", "pull", "push", "clone"}
            else _GIT_TIMEOUT_SECONDS
        )
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)
