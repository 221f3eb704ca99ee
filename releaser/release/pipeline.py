"""Release orchestration.

``run_publish`` drives one release from commit history to issue comments:

    credentials -> history -> impact -> version -> manifest bump ->
    publish script -> commit -> tag -> push -> notes -> GitHub release ->
    issue comments

From the release commit onward every git mutation records a compensation.
If any step up to the GitHub release fails, the recorded compensations are
applied newest-first before the failure is returned. Publishing to the
package registry cannot be undone and is not attempted.

Dry runs perform every read (including contributor lookups) and skip every
write; the compensation stack stays empty.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from functools import partial

from releaser.core.config import DEFAULT_REGISTRY_TOKEN_ENV, DEFAULT_TAG_PREFIX, Profile
from releaser.core.result import Err, Ok, Result
from releaser.git.repository import VersionControl
from releaser.output.console import ConsoleProtocol
from releaser.platform.process import ProcessError
from releaser.release.classify import resolve_release_impact
from releaser.release.commits import parse_commits
from releaser.release.compensation import CommitRevert, Compensation, TagRevert, unwind
from releaser.release.credentials import demand_credentials
from releaser.release.errors import (
    NotificationError,
    PipelineStepError,
    PublishError,
    ScriptExecutionError,
)
from releaser.release.github import RemoteHost
from releaser.release.manifest import Manifest
from releaser.release.model import (
    LatestRelease,
    NextRelease,
    ParsedCommit,
    ReleaseContext,
    ReleaseImpact,
    RepoInfo,
)
from releaser.release.notes import (
    group_by_category,
    render_notes,
    render_release_comment,
    resolve_contributors,
)
from releaser.release.semver import latest_release_tag, next_version

RELEASE_VERSION_ENV = "RELEASE_VERSION"

_MAX_NOTIFY_WORKERS = 8

type ScriptRunner = Callable[[str, Mapping[str, str]], Result[None, ProcessError]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class PublishOptions:
    profile: Profile
    dry_run: bool = False
    tag_prefix: str = DEFAULT_TAG_PREFIX
    registry_token_env: tuple[str, ...] = DEFAULT_REGISTRY_TOKEN_ENV


@dataclass(frozen=True, slots=True)
class Collaborators:
    """Everything the pipeline talks to. Tests substitute fakes."""

    repo: VersionControl
    host: RemoteHost
    manifest: Manifest
    console: ConsoleProtocol
    run_script: ScriptRunner
    environ: Mapping[str, str]
    clock: Callable[[], datetime] = _utc_now


@dataclass(frozen=True, slots=True)
class Published:
    tag: str
    url: str
    failed_notifications: tuple[NotificationError, ...] = ()


@dataclass(frozen=True, slots=True)
class DryRunCompleted:
    tag: str


@dataclass(frozen=True, slots=True)
class NothingToRelease:
    reason: str


type PublishOutcome = Published | DryRunCompleted | NothingToRelease


@dataclass(frozen=True, slots=True)
class _History:
    repo_info: RepoInfo
    branch: str
    latest: LatestRelease | None
    commits: tuple[ParsedCommit, ...]


@dataclass(frozen=True, slots=True)
class RunState:
    """State threaded through the recorded (compensated) steps."""

    options: PublishOptions
    history: _History
    context: ReleaseContext
    compensations: tuple[Compensation, ...] = ()
    notes: str | None = None
    release_url: str | None = None

    @property
    def tag(self) -> str:
        return self.context.next_release.tag

    def record(self, compensation: Compensation) -> RunState:
        return replace(self, compensations=(*self.compensations, compensation))


@dataclass(frozen=True, slots=True)
class _StepFailure:
    message: str
    cause: str | None
    # State at the moment of failure, including compensations the failing
    # step recorded before it broke.
    state: RunState


type _Step = Callable[[RunState, Collaborators], Result[RunState, _StepFailure]]


def _step_error(step: str, message: str, cause: object | None = None) -> PipelineStepError:
    return PipelineStepError(step=step, message=message, cause=str(cause) if cause else None)


# Read-only preparation


def _gather_history(
    options: PublishOptions, deps: Collaborators
) -> Result[_History, PipelineStepError]:
    console = deps.console

    info = deps.repo.info()
    if isinstance(info, Err):
        return Err(
            _step_error(
                "repository info", "Failed to get Git repository information", info.error.message
            )
        )
    branch = deps.repo.current_branch()
    if isinstance(branch, Err):
        return Err(
            _step_error(
                "repository info", "Failed to get the current branch name", branch.error.message
            )
        )

    repo_info = info.value
    console.info(f'preparing release for "{repo_info.slug}" from branch "{branch.value}"...')

    tags = deps.repo.list_tags()
    if isinstance(tags, Err):
        return Err(_step_error("latest release", "Failed to list tags", tags.error.message))

    latest: LatestRelease | None = None
    latest_tag = latest_release_tag(tags.value, options.tag_prefix)
    if latest_tag is not None:
        tag_hash = deps.repo.tag_hash(latest_tag)
        if isinstance(tag_hash, Err):
            return Err(
                _step_error(
                    "latest release", f"Failed to resolve tag {latest_tag}", tag_hash.error.message
                )
            )
        latest = LatestRelease(tag=latest_tag, hash=tag_hash.value)
        console.info(f"found latest release: {latest.tag} ({latest.hash})")
    else:
        console.info("found no previous releases, creating the first one...")

    raw = deps.repo.commits_since(latest.hash if latest else None)
    if isinstance(raw, Err):
        return Err(_step_error("commit history", "Failed to read commits", raw.error.message))

    noun = "commit" if len(raw.value) == 1 else "commits"
    listing = "".join(f"\n  - {c.short_hash} {c.subject}" for c in raw.value)
    console.info(f"found {len(raw.value)} new {noun}:{listing}")

    commits = parse_commits(raw.value)
    console.info(f"successfully parsed {len(commits)} commit(s)!")

    return Ok(_History(repo_info=repo_info, branch=branch.value, latest=latest, commits=commits))


def _build_context(
    history: _History, impact: ReleaseImpact, options: PublishOptions, deps: Collaborators
) -> Result[ReleaseContext, PipelineStepError]:
    previous = history.latest.tag if history.latest else None
    version = next_version(previous, impact, options.tag_prefix)
    if version is None:
        return Err(_step_error("next version", f"Invalid previous version: {previous}"))

    context = ReleaseContext(
        repo=history.repo_info,
        latest_release=history.latest,
        next_release=NextRelease(
            version=version,
            tag=f"{options.tag_prefix}{version}",
            published_at=deps.clock(),
        ),
    )
    shown = previous[len(options.tag_prefix) :] if previous else "0.0.0"
    deps.console.info(f'release type "{impact}": {shown} -> {version}')
    return Ok(context)


# Unrecorded mutations (no compensation)


def _bump_manifest(
    context: ReleaseContext, options: PublishOptions, deps: Collaborators
) -> Result[None, PipelineStepError]:
    version = context.next_release.version
    name = deps.manifest.name
    if options.dry_run:
        deps.console.warning(f"skip version bump in {name} in dry-run mode (next: {version})")
        return Ok(None)

    bumped = deps.manifest.bump(version)
    if isinstance(bumped, Err):
        return Err(
            _step_error("bump version", f"Failed to bump version in {name}", bumped.error.message)
        )
    deps.console.info(f"bumped version in {name} to: {version}")
    return Ok(None)


def _run_publish_script(
    context: ReleaseContext, options: PublishOptions, deps: Collaborators
) -> Result[None, ScriptExecutionError]:
    console = deps.console
    extra = {RELEASE_VERSION_ENV: context.next_release.version}
    console.info(f"preparing to run the publishing script with:\n{json.dumps(extra)}")

    if options.dry_run:
        console.warning("skip executing publishing script in dry-run mode")
        return Ok(None)

    profile = options.profile
    console.info(f'executing publishing script for profile "{profile.name}": {profile.use}')
    result = deps.run_script(profile.use, {**deps.environ, **extra})
    if isinstance(result, Err):
        console.error(
            "Failed to publish: the publish script errored. See the original error above."
        )
        return Err(ScriptExecutionError(command=profile.use, returncode=result.error.returncode))

    console.info("published successfully!")
    return Ok(None)


# Recorded steps


def _create_release_commit(state: RunState, deps: Collaborators) -> Result[RunState, _StepFailure]:
    message = f"chore(release): {state.tag}"
    if state.options.dry_run:
        deps.console.warning(f'skip creating a release commit in dry-run mode: "{message}"')
        return Ok(state)

    committed = deps.repo.commit([deps.manifest.name], message)
    if isinstance(committed, Err):
        return Err(_StepFailure("Failed to create release commit!", committed.error.message, state))

    deps.console.info(f'created a release commit at "{committed.value}"!')
    return Ok(state.record(CommitRevert()))


def _create_release_tag(state: RunState, deps: Collaborators) -> Result[RunState, _StepFailure]:
    tag = state.tag
    if state.options.dry_run:
        deps.console.warning(f"skip creating a release tag in dry-run mode: {tag}")
        return Ok(state)

    created = deps.repo.create_tag(tag)
    if isinstance(created, Err):
        return Err(_StepFailure("Failed to tag the release!", created.error.message, state))

    # Until the push succeeds only the local tag is ours to delete.
    state = state.record(TagRevert(tag=tag, pushed=False))
    pushed = deps.repo.push_tag(tag)
    if isinstance(pushed, Err):
        return Err(_StepFailure("Failed to tag the release!", pushed.error.message, state))

    # Pushed: deleting the remote tag is now part of the rollback.
    pushed_revert = TagRevert(tag=tag, pushed=True)
    state = replace(state, compensations=(*state.compensations[:-1], pushed_revert))
    deps.console.info(f'created release tag "{tag}"!')
    return Ok(state)


def _push_release(state: RunState, deps: Collaborators) -> Result[RunState, _StepFailure]:
    if state.options.dry_run:
        deps.console.warning("skip pushing release to Git in dry-run mode")
        return Ok(state)

    pushed = deps.repo.push(state.history.branch)
    if isinstance(pushed, Err):
        return Err(_StepFailure("Failed to push changes to origin!", pushed.error.message, state))

    deps.console.info(f'pushed changes to "{state.context.repo.remote}" (origin)!')
    return Ok(state)


def _generate_release_notes(state: RunState, deps: Collaborators) -> Result[RunState, _StepFailure]:
    commits = state.history.commits
    deps.console.info(f"generating release notes for {len(commits)} commits...")

    lookup = partial(deps.host.issue_contributors, state.context.repo)
    grouped = resolve_contributors(group_by_category(commits), lookup, deps.console)
    notes = render_notes(state.context, grouped)

    deps.console.info(f"generated release notes:\n\n{notes}\n")
    return Ok(replace(state, notes=notes))


def _create_hosted_release(state: RunState, deps: Collaborators) -> Result[RunState, _StepFailure]:
    deps.console.info("creating a new GitHub release...")
    if state.options.dry_run:
        deps.console.warning("skip creating a GitHub release in dry-run mode")
        return Ok(state)

    created = deps.host.create_release(
        state.context.repo,
        state.tag,
        state.notes or "",
        prerelease=state.options.profile.prerelease,
    )
    if isinstance(created, Err):
        return Err(_StepFailure("Failed to create GitHub release!", str(created.error), state))

    deps.console.info(f"created release: {created.value}")
    return Ok(replace(state, release_url=created.value))


RECORDED_STEPS: tuple[tuple[str, _Step], ...] = (
    ("release commit", _create_release_commit),
    ("release tag", _create_release_tag),
    ("push", _push_release),
    ("release notes", _generate_release_notes),
    ("github release", _create_hosted_release),
)


def _run_recorded_steps(
    state: RunState, deps: Collaborators
) -> Result[RunState, PipelineStepError]:
    for name, step in RECORDED_STEPS:
        result = step(state, deps)
        if isinstance(result, Ok):
            state = result.value
            continue

        failure = result.error
        deps.console.error(failure.message)
        deps.console.error("release failed, reverting changes...")
        failed = unwind(failure.state.compensations, deps.repo, deps.console)
        return Err(
            PipelineStepError(
                step=name,
                message=failure.message,
                cause=failure.cause,
                rolled_back=not failed,
            )
        )
    return Ok(state)


# Notifications


def referenced_issues(commits: tuple[ParsedCommit, ...]) -> tuple[str, ...]:
    """Distinct issue/PR numbers referenced by ``commits``, first-seen order."""
    seen: dict[str, None] = {}
    for commit in commits:
        for ref in commit.references:
            seen.setdefault(ref, None)
    return tuple(seen)


def _expand_linked_issues(
    issues: tuple[str, ...], repo: RepoInfo, deps: Collaborators
) -> tuple[str, ...]:
    seen = dict.fromkeys(issues)
    for issue in issues:
        linked = deps.host.linked_issues(repo, issue)
        if isinstance(linked, Err):
            deps.console.warning(
                f"could not inspect #{issue} for linked issues: {linked.error.message}"
            )
            continue
        for number in linked.value:
            seen.setdefault(number, None)
    return tuple(seen)


def _comment(
    issue: str, body: str, repo: RepoInfo, host: RemoteHost
) -> NotificationError | None:
    result = host.create_comment(repo, issue, body)
    if isinstance(result, Err):
        return NotificationError(issue=issue, message=result.error.message)
    return None


def _notify_issues(state: RunState, deps: Collaborators) -> tuple[NotificationError, ...]:
    console = deps.console
    repo = state.context.repo
    console.info("commenting on referenced GitHub issues...")

    issues = _expand_linked_issues(referenced_issues(state.history.commits), repo, deps)
    if not issues:
        console.info("no referenced GitHub issues, nothing to comment!")
        return ()

    console.info(f"found {len(issues)} referenced GitHub issues!")
    noun = "issue" if len(issues) == 1 else "issues"
    listing = "\n".join(f"  - {issue}" for issue in issues)

    if state.options.dry_run:
        console.warning(f"skip commenting on {len(issues)} GitHub {noun}:\n{listing}")
        return ()

    console.info(f"commenting on {len(issues)} GitHub {noun}:\n{listing}")
    body = render_release_comment(state.context, state.release_url or "")

    workers = min(_MAX_NOTIFY_WORKERS, len(issues))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(_comment, issue, body, repo, deps.host) for issue in issues]
        outcomes = [f.result() for f in futures]

    failures = tuple(o for o in outcomes if o is not None)
    for failure in failures:
        console.error(f'commenting on issue "{failure.issue}" failed: {failure.message}')
    return failures


# Entry point


def run_publish(
    options: PublishOptions, deps: Collaborators
) -> Result[PublishOutcome, PublishError]:
    """Run one release.

    Returns:
        Ok(Published | DryRunCompleted | NothingToRelease) on success
        Err(ConfigurationError | ScriptExecutionError | PipelineStepError)
    """
    console = deps.console

    creds = demand_credentials(deps.environ, deps.host, options.registry_token_env)
    if isinstance(creds, Err):
        return creds

    gathered = _gather_history(options, deps)
    if isinstance(gathered, Err):
        return gathered
    history = gathered.value

    if not history.commits:
        console.warning("no commits since the latest release, skipping...")
        return Ok(NothingToRelease(reason="no commits since the latest release"))

    impact = resolve_release_impact(history.commits, prerelease=options.profile.prerelease)
    if impact is ReleaseImpact.NONE:
        console.warning("committed changes do not bump version, skipping...")
        return Ok(NothingToRelease(reason="committed changes do not bump version"))

    context = _build_context(history, impact, options, deps)
    if isinstance(context, Err):
        return context

    bumped = _bump_manifest(context.value, options, deps)
    if isinstance(bumped, Err):
        return bumped

    published = _run_publish_script(context.value, options, deps)
    if isinstance(published, Err):
        return published

    recorded = _run_recorded_steps(
        RunState(options=options, history=history, context=context.value), deps
    )
    if isinstance(recorded, Err):
        return recorded
    state = recorded.value

    failed_notifications = _notify_issues(state, deps)

    if options.dry_run:
        console.warning(f'release "{state.tag}" completed in dry-run mode!')
        return Ok(DryRunCompleted(tag=state.tag))

    console.success(f'release "{state.tag}" completed!')
    return Ok(
        Published(
            tag=state.tag,
            url=state.release_url or "",
            failed_notifications=failed_notifications,
        )
    )
