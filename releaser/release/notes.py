"""Release notes aggregation and rendering.

Three stages, each producing a new value:

1. ``group_by_category``: parsed commits -> ``CommitGroup``
2. ``resolve_contributors``: ``CommitGroup`` -> ``ReleaseNoteGroup``
3. ``render_notes``: ``ReleaseNoteGroup`` -> Markdown
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor

from releaser.core.result import Err, Result
from releaser.output.console import ConsoleProtocol
from releaser.release.classify import is_breaking_change
from releaser.release.errors import RemoteError
from releaser.release.model import (
    AnnotatedCommit,
    CommitGroup,
    ParsedCommit,
    ReleaseContext,
    ReleaseNoteGroup,
)

IGNORED_COMMIT_TYPES = frozenset({"chore"})
BREAKING = "breaking"

# Rendered categories, in order; anything else is grouped but not shown.
SECTIONS: tuple[tuple[str, str], ...] = (
    (BREAKING, "### ⚠️ BREAKING CHANGES"),
    ("feat", "### Features"),
    ("fix", "### Bug Fixes"),
)

_MAX_LOOKUP_WORKERS = 8

type ContributorLookup = Callable[[str], Result[tuple[str, ...], RemoteError]]


def group_by_category(commits: Iterable[ParsedCommit]) -> CommitGroup:
    """File each noteworthy commit under "breaking" or its own type.

    Merge commits, untyped commits and internal changes ("chore") are
    skipped. Categories keep first-seen order, commits keep input order.
    """
    groups: dict[str, list[ParsedCommit]] = {}
    for commit in commits:
        if commit.type is None or commit.merge or commit.type in IGNORED_COMMIT_TYPES:
            continue
        category = BREAKING if is_breaking_change(commit) else commit.type
        bucket = groups.setdefault(category, [])
        if commit not in bucket:
            bucket.append(commit)
    return {category: tuple(items) for category, items in groups.items()}


class _CachedLookup:
    """Memoizes per-issue results so each issue is queried once per run."""

    def __init__(self, lookup: ContributorLookup) -> None:
        self._lookup = lookup
        self._cache: dict[str, Result[tuple[str, ...], RemoteError]] = {}

    def __call__(self, issue: str) -> Result[tuple[str, ...], RemoteError]:
        if issue not in self._cache:
            self._cache[issue] = self._lookup(issue)
        return self._cache[issue]


def _commit_contributors(
    commit: ParsedCommit,
    lookup: ContributorLookup,
    console: ConsoleProtocol,
) -> tuple[str, ...]:
    if not commit.references:
        return ()

    workers = min(_MAX_LOOKUP_WORKERS, len(commit.references))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(lookup, commit.references))

    logins: dict[str, None] = {}
    for issue, result in zip(commit.references, results, strict=True):
        if isinstance(result, Err):
            console.error(f"failed to extract the authors for the issue #{issue}: {result.error}")
            continue
        for login in result.value:
            logins.setdefault(login, None)
    return tuple(logins)


def resolve_contributors(
    group: CommitGroup,
    lookup: ContributorLookup,
    console: ConsoleProtocol,
) -> ReleaseNoteGroup:
    """Attach contributor handles to every grouped commit.

    Commits are processed one at a time so their order is kept; the issue
    lookups of a single commit run concurrently. A failed lookup is logged
    and contributes nothing.
    """
    cached = _CachedLookup(lookup)
    notes: ReleaseNoteGroup = {}
    for category, commits in group.items():
        notes[category] = tuple(
            AnnotatedCommit(commit=c, contributors=_commit_contributors(c, cached, console))
            for c in commits
        )
    return notes


def _format_contributors(contributors: tuple[str, ...]) -> str | None:
    if not contributors:
        return None
    return " ".join(f"@{login}" for login in contributors)


def _render_item(entry: AnnotatedCommit, *, include_notes: bool) -> list[str]:
    commit = entry.commit
    if not commit.description:
        return []

    parts = [
        "-",
        f"**{commit.scope}:**" if commit.scope else None,
        commit.description,
        f"({commit.short_hash})",
        _format_contributors(entry.contributors),
    ]
    lines = [" ".join(p for p in parts if p)]

    if include_notes and commit.notes:
        # Breaking entries are set apart and followed by their notes.
        lines.insert(0, "")
        for note in commit.notes:
            lines.extend(["", note])
    return lines


def render_notes(context: ReleaseContext, notes: ReleaseNoteGroup) -> str:
    """Markdown body for the hosted release."""
    release = context.next_release
    markdown = [f"## {release.tag} ({release.published_at.strftime('%Y-%m-%d')})"]

    for category, heading in SECTIONS:
        items: list[str] = []
        for entry in notes.get(category, ()):
            items.extend(_render_item(entry, include_notes=category == BREAKING))
        if not items:
            continue
        markdown.extend(["", heading])
        if category != BREAKING:
            markdown.append("")
        markdown.extend(items)

    return "\n".join(markdown)


def render_release_comment(context: ReleaseContext, release_url: str) -> str:
    """Comment posted on every issue and pull request the release references."""
    tag = context.next_release.tag
    return "\n".join(
        [
            f"## Released: {tag} 🎉",
            "",
            f"This has been released in {tag}!",
            "",
            f"- 📄 [**Release notes**]({release_url})",
        ]
    )
