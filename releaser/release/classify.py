from __future__ import annotations

from collections.abc import Iterable

from releaser.release.commits import BREAKING_SENTINELS
from releaser.release.model import ParsedCommit, ReleaseImpact


def is_breaking_change(commit: ParsedCommit) -> bool:
    """True if the header carries "!" or the footer a breaking-change note.

    See https://www.conventionalcommits.org/en/v1.0.0/#summary
    """
    if commit.breaking_marker:
        return True
    footer = commit.footer or ""
    return any(sentinel in footer for sentinel in BREAKING_SENTINELS)


def resolve_release_impact(
    commits: Iterable[ParsedCommit], *, prerelease: bool = False
) -> ReleaseImpact:
    """Highest impact of ``commits``.

    The first breaking change decides the result immediately: major, or
    minor for prereleases (which never leave 0.x on their own). Otherwise
    any "feat" means minor and any "fix" means patch.
    """
    minor = False
    patch = False
    for commit in commits:
        if is_breaking_change(commit):
            return ReleaseImpact.MINOR if prerelease else ReleaseImpact.MAJOR
        match commit.type:
            case "feat":
                minor = True
            case "fix":
                patch = True
            case _:
                pass

    if minor:
        return ReleaseImpact.MINOR
    if patch:
        return ReleaseImpact.PATCH
    return ReleaseImpact.NONE
