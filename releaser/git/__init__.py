"""Git plumbing used by the release pipeline."""

from .repository import GitError, Repository, VersionControl, parse_remote_url

__all__ = ["GitError", "Repository", "VersionControl", "parse_remote_url"]
