from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from releaser.release.model import ReleaseImpact

_VERSION_RE = re.compile(r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)$")

INITIAL_VERSION = "0.0.0"


@dataclass(frozen=True, slots=True, order=True)
class SemVer:
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def to_tag(self, prefix: str = "v") -> str:
        return f"{prefix}{self}"

    def bump(self, impact: ReleaseImpact) -> SemVer:
        match impact:
            case ReleaseImpact.MAJOR:
                return SemVer(self.major + 1, 0, 0)
            case ReleaseImpact.MINOR:
                return SemVer(self.major, self.minor + 1, 0)
            case ReleaseImpact.PATCH:
                return SemVer(self.major, self.minor, self.patch + 1)
            case _:
                raise AssertionError(f"unexpected release impact: {impact}")


def parse_version(text: str, prefix: str = "v") -> SemVer | None:
    """Parse "1.2.3" or "<prefix>1.2.3". Pre-release suffixes are rejected."""
    value = text.strip()
    if prefix and value.startswith(prefix):
        value = value[len(prefix) :]
    m = _VERSION_RE.match(value)
    if m is None:
        return None
    return SemVer(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def next_version(previous: str | None, impact: ReleaseImpact, prefix: str = "v") -> str | None:
    """Version following ``previous`` (``None`` counts as 0.0.0).

    Returns None if ``previous`` is not a valid version.
    """
    base = parse_version(previous if previous is not None else INITIAL_VERSION, prefix)
    if base is None:
        return None
    return str(base.bump(impact))


def latest_release_tag(tags: Iterable[str], prefix: str = "v") -> str | None:
    """Highest-versioned tag carrying ``prefix``; other tags are ignored."""
    best: tuple[SemVer, str] | None = None
    for tag in tags:
        if prefix and not tag.startswith(prefix):
            continue
        version = parse_version(tag, prefix)
        if version is None:
            continue
        if best is None or version > best[0]:
            best = (version, tag)
    return best[1] if best is not None else None
