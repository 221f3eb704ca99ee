"""Conventional-commit parsing.

``parse_commit`` turns a ``RawCommit`` into a ``ParsedCommit``:

    feat(cli)!: drop --legacy flag

    BREAKING CHANGE: --legacy was removed.
    Closes #42

yields type "feat", scope "cli", ``breaking_marker=True``, one note
("--legacy was removed.") and references ("42",).
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from releaser.release.model import ParsedCommit, RawCommit

BREAKING_SENTINELS = ("BREAKING CHANGE:", "BREAKING-CHANGE:")

_HEADER_RE = re.compile(
    r"^(?P<type>\w+)(?:\((?P<scope>[^()\r\n]*)\))?(?P<bang>!)?: (?P<description>.+)$"
)
_NOTE_RE = re.compile(r"^BREAKING[ -]CHANGE:\s*(?P<text>.*)$")
_CLOSING_RE = re.compile(r"^(?:close[sd]?|fix(?:e[sd])?|resolve[sd]?)\s+#\d+", re.IGNORECASE)
# "#12" but not "owner/repo#12" or "abc#12".
_REFERENCE_RE = re.compile(r"(?<![\w/])#(\d+)\b")
_MERGE_PREFIXES = ("Merge pull request ", "Merge branch ", "Merge remote-tracking branch ")


def _is_footer_line(line: str) -> bool:
    stripped = line.strip()
    return bool(_NOTE_RE.match(stripped) or _CLOSING_RE.match(stripped))


def _split_footer(body: str | None) -> str | None:
    if not body:
        return None
    lines = body.splitlines()
    for index, line in enumerate(lines):
        if _is_footer_line(line):
            return "\n".join(lines[index:]).strip() or None
    return None


def _extract_notes(footer: str | None) -> tuple[str, ...]:
    if not footer:
        return ()

    notes: list[str] = []
    current: list[str] | None = None
    for line in footer.splitlines():
        stripped = line.strip()
        m = _NOTE_RE.match(stripped)
        if m is not None or _CLOSING_RE.match(stripped):
            if current is not None:
                notes.append("\n".join(current).strip())
            # A closing reference ends the current note without starting one.
            current = [m.group("text")] if m is not None else None
        elif current is not None:
            current.append(line)
    if current is not None:
        notes.append("\n".join(current).strip())
    return tuple(text for text in notes if text)


def _extract_references(*texts: str | None) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for text in texts:
        if not text:
            continue
        for m in _REFERENCE_RE.finditer(text):
            seen.setdefault(m.group(1), None)
    return tuple(seen)


def parse_commit(raw: RawCommit) -> ParsedCommit:
    header = raw.subject.splitlines()[0].strip() if raw.subject.strip() else ""
    footer = _split_footer(raw.body)
    notes = _extract_notes(footer)
    references = _extract_references(header, raw.body)

    if header.startswith(_MERGE_PREFIXES):
        return ParsedCommit(
            hash=raw.hash,
            subject=raw.subject,
            body=raw.body,
            type=None,
            scope=None,
            description=header,
            footer=footer,
            notes=notes,
            references=references,
            merge=True,
        )

    m = _HEADER_RE.match(header)
    if m is None:
        return ParsedCommit(
            hash=raw.hash,
            subject=raw.subject,
            body=raw.body,
            type=None,
            scope=None,
            description=header,
            footer=footer,
            notes=notes,
            references=references,
        )

    scope = (m.group("scope") or "").strip() or None
    return ParsedCommit(
        hash=raw.hash,
        subject=raw.subject,
        body=raw.body,
        type=m.group("type"),
        scope=scope,
        description=m.group("description").strip(),
        breaking_marker=m.group("bang") is not None,
        footer=footer,
        notes=notes,
        references=references,
    )


def parse_commits(commits: Iterable[RawCommit]) -> tuple[ParsedCommit, ...]:
    """Parse every commit, preserving order. Never drops an entry."""
    return tuple(parse_commit(c) for c in commits)
