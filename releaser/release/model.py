from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum


class ReleaseImpact(IntEnum):
    """Release impact of a set of commits, ordered by severity."""

    NONE = 0
    PATCH = 1
    MINOR = 2
    MAJOR = 3

    def __str__(self) -> str:
        return self.name.lower()


@dataclass(frozen=True, slots=True)
class RawCommit:
    hash: str
    subject: str
    body: str | None = None

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


@dataclass(frozen=True, slots=True)
class ParsedCommit:
    """A commit with its conventional-commit structure extracted."""

    hash: str
    subject: str
    body: str | None
    type: str | None
    scope: str | None
    # Header text after "type(scope)!: ", or the whole header otherwise.
    description: str
    breaking_marker: bool = False
    footer: str | None = None
    notes: tuple[str, ...] = ()
    # Issue/PR numbers without "#", first-seen order.
    references: tuple[str, ...] = ()
    merge: bool = False

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


@dataclass(frozen=True, slots=True)
class AnnotatedCommit:
    commit: ParsedCommit
    contributors: tuple[str, ...] = ()


# Note category ("breaking" or a commit type) -> commits, in commit order.
CommitGroup = dict[str, tuple[ParsedCommit, ...]]
ReleaseNoteGroup = dict[str, tuple[AnnotatedCommit, ...]]


@dataclass(frozen=True, slots=True)
class RepoInfo:
    owner: str
    name: str
    remote: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True, slots=True)
class LatestRelease:
    tag: str
    hash: str


@dataclass(frozen=True, slots=True)
class NextRelease:
    version: str
    tag: str
    published_at: datetime


@dataclass(frozen=True, slots=True)
class ReleaseContext:
    """Everything downstream steps know about the release being cut.

    Built once per run; adjustments produce a new value via
    ``dataclasses.replace``.
    """

    repo: RepoInfo
    latest_release: LatestRelease | None
    next_release: NextRelease
