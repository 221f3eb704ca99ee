"""Undo actions for the git mutations a release performs.

Each successful mutation records a compensation value on a stack; when a
later step fails the stack is applied newest-first. Compensations are plain
data so tests can inspect and compare them.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from releaser.core.result import Err, Ok, Result
from releaser.git.repository import GitError, VersionControl
from releaser.output.console import ConsoleProtocol


@dataclass(frozen=True, slots=True)
class CommitRevert:
    """Drop the release commit, keeping unrelated working-tree changes."""


@dataclass(frozen=True, slots=True)
class TagRevert:
    """Delete the release tag locally and, once pushed, on the remote."""

    tag: str
    pushed: bool = False


type Compensation = CommitRevert | TagRevert


def _revert_commit(repo: VersionControl, console: ConsoleProtocol) -> Result[None, GitError]:
    console.info("reverting the release commit...")

    diff = repo.has_diff()
    if isinstance(diff, Err):
        return diff
    stashed = diff.value
    if stashed:
        console.info("detected uncommitted changes, stashing...")
        saved = repo.stash()
        if isinstance(saved, Err):
            return saved

    reset = repo.reset_hard(1)

    # Restore the stash even when the reset failed.
    if stashed:
        console.info("unstashing uncommitted changes...")
        popped = repo.stash_pop()
        if isinstance(reset, Ok) and isinstance(popped, Err):
            return popped
    return reset


def _revert_tag(
    tag: TagRevert, repo: VersionControl, console: ConsoleProtocol
) -> Result[None, GitError]:
    console.info(f'reverting the release tag "{tag.tag}"...')
    deleted = repo.delete_tag(tag.tag)
    if isinstance(deleted, Err):
        return deleted
    if tag.pushed:
        return repo.delete_remote_tag(tag.tag)
    return Ok(None)


def apply_compensation(
    compensation: Compensation, repo: VersionControl, console: ConsoleProtocol
) -> Result[None, GitError]:
    match compensation:
        case CommitRevert():
            return _revert_commit(repo, console)
        case TagRevert():
            return _revert_tag(compensation, repo, console)


def unwind(
    stack: Sequence[Compensation], repo: VersionControl, console: ConsoleProtocol
) -> tuple[GitError, ...]:
    """Apply every compensation, newest first.

    A failing compensation is logged and the rest still run. Returns the
    failures (empty when the rollback was complete).
    """
    failures: list[GitError] = []
    for compensation in reversed(stack):
        result = apply_compensation(compensation, repo, console)
        if isinstance(result, Err):
            console.error(f"rollback step failed ({result.error.command}): {result.error.message}")
            failures.append(result.error)
    return tuple(failures)
