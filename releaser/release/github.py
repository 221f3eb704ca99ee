"""GitHub access through the ``gh`` CLI.

``gh`` picks up ``GITHUB_TOKEN`` from the environment, so every call here is
authenticated with the same token the credential check validated. Reads are
retried on transient failures; writes are attempted once.
"""

from __future__ import annotations

import json
import re
import shutil
from collections.abc import Mapping
from pathlib import Path
from time import sleep
from typing import Protocol

from releaser.core.result import Err, Ok, Result
from releaser.core.structured import as_obj_list, as_str_dict, get_path, get_str, get_table
from releaser.platform.process import ProcessError
from releaser.platform.process import run as run_process
from releaser.release.errors import RemoteError
from releaser.release.model import RepoInfo

GH_TIMEOUT_SECONDS = 60.0
GH_READ_RETRY_ATTEMPTS = 3
GH_READ_RETRY_DELAY_SECONDS = 1.0

_CLOSING_REF_RE = re.compile(
    r"\b(?:close[sd]?|fix(?:e[sd])?|resolve[sd]?)\s*:?\s+#(\d+)\b", re.IGNORECASE
)

COMMIT_AUTHORS_QUERY = """
query GetCommitAuthors($owner: String!, $repo: String!, $pullRequestId: Int!) {
  repository(owner: $owner, name: $repo) {
    pullRequest(number: $pullRequestId) {
      url
      author {
        login
      }
      commits(first: 100) {
        nodes {
          commit {
            authors(first: 100) {
              nodes {
                user {
                  login
                }
              }
            }
          }
        }
      }
    }
  }
}
"""


class RemoteHost(Protocol):
    """Hosting-service operations the release pipeline depends on."""

    def validate_token(self) -> Result[str, RemoteError]: ...

    def create_release(
        self, repo: RepoInfo, tag: str, notes: str, *, prerelease: bool = False
    ) -> Result[str, RemoteError]: ...

    def create_comment(
        self, repo: RepoInfo, issue: str, body: str
    ) -> Result[None, RemoteError]: ...

    def issue_contributors(
        self, repo: RepoInfo, issue: str
    ) -> Result[tuple[str, ...], RemoteError]: ...

    def linked_issues(self, repo: RepoInfo, issue: str) -> Result[tuple[str, ...], RemoteError]: ...


def _is_transient_gh_error(error: ProcessError) -> bool:
    text = f"{error.stderr}\n{error.stdout}".lower()
    markers = (
        "timed out",
        "timeout",
        "connection reset",
        "connection refused",
        "temporarily unavailable",
        "service unavailable",
        "bad gateway",
        "gateway timeout",
        "http 429",
        "http 500",
        "http 502",
        "http 503",
        "http 504",
    )
    return any(marker in text for marker in markers)


def _decode(raw: str, operation: str) -> Result[object, RemoteError]:
    try:
        obj: object = json.loads(raw)
    except json.JSONDecodeError as e:
        return Err(RemoteError(operation=operation, message=f"invalid JSON from gh: {e}"))
    return Ok(obj)


def parse_closing_references(text: str | None) -> tuple[str, ...]:
    """Issue numbers a pull request body closes ("Closes #12", "fixes #3")."""
    if not text:
        return ()
    seen: dict[str, None] = {}
    for m in _CLOSING_REF_RE.finditer(text):
        seen.setdefault(m.group(1), None)
    return tuple(seen)


def parse_pull_request_authors(payload: object) -> Result[tuple[str, ...], str]:
    """Logins of a pull request's author and of every commit author in it.

    Commit authors without a linked GitHub user are skipped.
    """
    data = as_str_dict(payload)
    if data is None:
        return Err("unexpected GraphQL payload")

    errors = as_obj_list(data.get("errors"))
    if errors:
        messages = [get_str(e, "message") or "unknown error" for e in map(as_str_dict, errors) if e]
        return Err(f"GitHub API responded with {len(errors)} error(s): {'; '.join(messages)}")

    pull = get_path(data, "data", "repository", "pullRequest")
    pull_tbl = as_str_dict(pull)
    if pull_tbl is None:
        return Err("not a pull request")

    logins: dict[str, None] = {}
    author = get_table(pull_tbl, "author")
    if author is not None and (login := get_str(author, "login")):
        logins.setdefault(login, None)

    for node in as_obj_list(get_path(pull_tbl, "commits", "nodes")) or []:
        for author_node in as_obj_list(get_path(node, "commit", "authors", "nodes")) or []:
            user = as_str_dict(get_path(author_node, "user"))
            if user is not None and (login := get_str(user, "login")):
                logins.setdefault(login, None)

    return Ok(tuple(logins))


class GhRemoteHost:
    """``RemoteHost`` backed by ``gh api``.

    Attributes:
        cwd: Directory ``gh`` runs in
        env: Environment for ``gh`` (None inherits the current one)
    """

    def __init__(self, cwd: Path, env: Mapping[str, str] | None = None) -> None:
        self.cwd = cwd
        self.env = env

    def validate_token(self) -> Result[str, RemoteError]:
        """Check ``gh`` is installed and the token works. Returns the login."""
        if shutil.which("gh") is None:
            return Err(
                RemoteError(
                    operation="validate token",
                    message="gh: missing",
                    hint="Install GitHub CLI: https://cli.github.com/",
                )
            )

        result = self._read(["api", "user"], "validate token")
        if isinstance(result, Err):
            return Err(
                RemoteError(
                    operation="validate token",
                    message="GitHub rejected the token",
                    hint=result.error.message,
                )
            )

        obj = _decode(result.value, "validate token")
        if isinstance(obj, Err):
            return obj
        data = as_str_dict(obj.value)
        login = get_str(data, "login") if data is not None else None
        if login is None:
            return Err(RemoteError(operation="validate token", message="missing user.login"))
        return Ok(login)

    def create_release(
        self, repo: RepoInfo, tag: str, notes: str, *, prerelease: bool = False
    ) -> Result[str, RemoteError]:
        """Publish a GitHub release for ``tag``. Returns its HTML URL."""
        operation = f"create release {tag}"
        result = self._write(
            [
                "api",
                f"repos/{repo.slug}/releases",
                "-X",
                "POST",
                "-f",
                f"tag_name={tag}",
                "-f",
                f"name={tag}",
                "-f",
                f"body={notes}",
                "-F",
                f"prerelease={'true' if prerelease else 'false'}",
            ],
            operation,
        )
        if isinstance(result, Err):
            return result

        obj = _decode(result.value, operation)
        if isinstance(obj, Err):
            return obj
        data = as_str_dict(obj.value)
        url = get_str(data, "html_url") if data is not None else None
        if url is None:
            return Err(RemoteError(operation=operation, message="missing html_url in response"))
        return Ok(url)

    def create_comment(self, repo: RepoInfo, issue: str, body: str) -> Result[None, RemoteError]:
        result = self._write(
            [
                "api",
                f"repos/{repo.slug}/issues/{issue}/comments",
                "-X",
                "POST",
                "-f",
                f"body={body}",
            ],
            f"comment on #{issue}",
        )
        if isinstance(result, Err):
            return result
        return Ok(None)

    def issue_contributors(
        self, repo: RepoInfo, issue: str
    ) -> Result[tuple[str, ...], RemoteError]:
        """Authors of the pull request numbered ``issue`` and of its commits."""
        operation = f"contributors of #{issue}"
        result = self._read(
            [
                "api",
                "graphql",
                "-f",
                f"query={COMMIT_AUTHORS_QUERY}",
                "-f",
                f"owner={repo.owner}",
                "-f",
                f"repo={repo.name}",
                "-F",
                f"pullRequestId={issue}",
            ],
            operation,
        )
        if isinstance(result, Err):
            return result

        obj = _decode(result.value, operation)
        if isinstance(obj, Err):
            return obj
        return parse_pull_request_authors(obj.value).map_err(
            lambda message: RemoteError(operation=operation, message=message)
        )

    def linked_issues(self, repo: RepoInfo, issue: str) -> Result[tuple[str, ...], RemoteError]:
        """Issues closed by pull request ``issue`` (empty for plain issues)."""
        operation = f"linked issues of #{issue}"
        result = self._read(["api", f"repos/{repo.slug}/issues/{issue}"], operation)
        if isinstance(result, Err):
            return result

        obj = _decode(result.value, operation)
        if isinstance(obj, Err):
            return obj
        data = as_str_dict(obj.value)
        if data is None:
            return Err(RemoteError(operation=operation, message="unexpected issue payload"))
        if get_table(data, "pull_request") is None:
            return Ok(())

        linked = parse_closing_references(get_str(data, "body"))
        return Ok(tuple(n for n in linked if n != issue))

    def _read(self, args: list[str], operation: str) -> Result[str, RemoteError]:
        attempts = max(1, GH_READ_RETRY_ATTEMPTS)
        for attempt in range(attempts):
            result = self._gh(args)
            if isinstance(result, Ok):
                return result

            error = result.error
            if attempt < attempts - 1 and _is_transient_gh_error(error):
                sleep(GH_READ_RETRY_DELAY_SECONDS * (attempt + 1))
                continue
            return Err(self._error(operation, error))

        return Err(RemoteError(operation=operation, message="gh failed"))

    def _write(self, args: list[str], operation: str) -> Result[str, RemoteError]:
        result = self._gh(args)
        if isinstance(result, Err):
            return Err(self._error(operation, result.error))
        return result

    def _gh(self, args: list[str]) -> Result[str, ProcessError]:
        return run_process(["gh", *args], cwd=self.cwd, env=self.env, timeout=GH_TIMEOUT_SECONDS)

    @staticmethod
    def _error(operation: str, error: ProcessError) -> RemoteError:
        return RemoteError(
            operation=operation,
            message=error.stderr.strip() or error.stdout.strip() or f"gh exited {error.returncode}",
        )
