from __future__ import annotations

from releaser.core.result import Err, Ok
from releaser.git.repository import GitError
from releaser.release.commits import parse_commits
from releaser.release.errors import (
    ConfigurationError,
    PipelineStepError,
    RemoteError,
    ScriptExecutionError,
    publish_exit_code,
)
from releaser.release.manifest import ManifestError
from releaser.release.pipeline import (
    DryRunCompleted,
    NothingToRelease,
    Published,
    referenced_issues,
    run_publish,
)
from releaser.test.release._fakes import FakeRepo, World, commit, options


def _first_release_world() -> World:
    return World(
        repo=FakeRepo(
            [
                commit(2, "feat: new things (#1)"),
                commit(1, "chore: initial commit"),
            ]
        )
    )


def _world_after_v123(*, dirty: bool = False) -> World:
    base = commit(1, "chore(release): v1.2.3")
    return World(
        repo=FakeRepo(
            [
                commit(3, "fix: handle empty tags", "Closes #10"),
                commit(2, "feat(cli): add --dry-run (#11)"),
                base,
            ],
            tags={"v1.2.3": base.hash, "nightly": base.hash},
            dirty=dirty,
        )
    )


class TestPublish:
    """A full release against in-memory collaborators."""

    def test_first_release_is_minor(self) -> None:
        world = _first_release_world()

        result = run_publish(options(), world.deps())

        assert result == Ok(
            Published(tag="v0.1.0", url="https://github.com/octo/widgets/releases/tag/v0.1.0")
        )
        assert world.repo.since == [None]
        assert world.manifest.versions == ["0.1.0"]
        assert world.repo.tags == {"v0.1.0": world.repo.head}
        assert world.repo.remote_tags == {"v0.1.0"}
        assert world.repo.pushed_branches == ["main"]
        assert world.repo.history[0].subject == "chore(release): v0.1.0"
        infos = world.console.infos
        assert "found no previous releases, creating the first one..." in infos
        assert 'release type "minor": 0.0.0 -> 0.1.0' in infos
        assert 'release "v0.1.0" completed!' in world.console.text

    def test_script_gets_release_version(self) -> None:
        world = _first_release_world()

        run_publish(options(), world.deps())

        [(command, env)] = world.script.runs
        assert command == "npm publish"
        assert env["RELEASE_VERSION"] == "0.1.0"
        assert env["NODE_AUTH_TOKEN"] == "npm_test"

    def test_release_since_latest_tag(self) -> None:
        world = _world_after_v123()

        result = run_publish(options(), world.deps())

        assert isinstance(result, Ok)
        assert result.value == Published(
            tag="v1.3.0", url="https://github.com/octo/widgets/releases/tag/v1.3.0"
        )
        assert world.repo.since == [commit(1, "").hash]
        assert f"found latest release: v1.2.3 ({commit(1, '').hash})" in world.console.infos
        assert any(m.startswith("found 2 new commits:") for m in world.console.infos)
        assert 'release type "minor": 1.2.3 -> 1.3.0' in world.console.infos

    def test_release_notes_and_hosted_release(self) -> None:
        world = _world_after_v123()
        world.host.contributors = {"11": ("alice",)}

        run_publish(options(), world.deps())

        [(tag, notes, prerelease)] = world.host.releases
        assert tag == "v1.3.0"
        assert prerelease is False
        assert notes.startswith("## v1.3.0 (2024-03-05)")
        assert "- **cli:** add --dry-run (#11) (2222222) @alice" in notes
        assert "- handle empty tags (3333333)" in notes

    def test_each_referenced_issue_gets_one_comment(self) -> None:
        world = _world_after_v123()

        run_publish(options(), world.deps())

        assert sorted(issue for issue, _ in world.host.comments) == ["10", "11"]
        for _, body in world.host.comments:
            assert "v1.3.0" in body
            assert "https://github.com/octo/widgets/releases/tag/v1.3.0" in body

    def test_linked_issues_of_pull_requests_are_notified(self) -> None:
        world = _world_after_v123()
        world.host.linked = {"11": ("12", "10")}

        run_publish(options(), world.deps())

        assert sorted(issue for issue, _ in world.host.comments) == ["10", "11", "12"]

    def test_failed_comment_does_not_block_others(self) -> None:
        world = _world_after_v123()
        world.host.failing_comments = {"10"}

        result = run_publish(options(), world.deps())

        assert isinstance(result, Ok)
        assert isinstance(result.value, Published)
        assert [f.issue for f in result.value.failed_notifications] == ["10"]
        assert [issue for issue, _ in world.host.comments] == ["11"]
        assert any('commenting on issue "10" failed' in e for e in world.console.errors)

    def test_prerelease_breaking_change_is_minor(self) -> None:
        base = commit(1, "chore(release): v0.1.2")
        world = World(
            repo=FakeRepo(
                [commit(2, "feat!: rename everything"), base],
                tags={"v0.1.2": base.hash},
            )
        )

        result = run_publish(options(prerelease=True), world.deps())

        assert isinstance(result, Ok)
        assert result.value == Published(
            tag="v0.2.0", url="https://github.com/octo/widgets/releases/tag/v0.2.0"
        )
        assert world.host.releases[0][2] is True

    def test_breaking_change_is_major(self) -> None:
        base = commit(1, "chore(release): v1.4.2")
        world = World(
            repo=FakeRepo(
                [commit(2, "fix: x", "BREAKING CHANGE: y"), base],
                tags={"v1.4.2": base.hash},
            )
        )

        result = run_publish(options(), world.deps())

        assert isinstance(result, Ok)
        assert isinstance(result.value, Published)
        assert result.value.tag == "v2.0.0"


class TestNothingToRelease:
    def test_no_commits(self) -> None:
        base = commit(1, "chore(release): v1.0.0")
        world = World(repo=FakeRepo([base], tags={"v1.0.0": base.hash}))

        result = run_publish(options(), world.deps())

        assert isinstance(result, Ok)
        assert isinstance(result.value, NothingToRelease)
        assert "no commits since the latest release, skipping..." in world.console.warnings
        assert world.script.runs == []

    def test_no_relevant_commits(self) -> None:
        world = World(repo=FakeRepo([commit(2, "chore: deps"), commit(1, "docs: readme")]))

        result = run_publish(options(), world.deps())

        assert isinstance(result, Ok)
        assert isinstance(result.value, NothingToRelease)
        assert "committed changes do not bump version, skipping..." in world.console.warnings
        assert world.manifest.versions == []
        assert world.script.runs == []
        assert "commit" not in world.repo.calls
        assert world.host.releases == []


class TestDryRun:
    def test_computes_but_never_writes(self) -> None:
        world = _world_after_v123()
        world.host.contributors = {"10": ("bob",), "11": ("alice",)}
        history_before = list(world.repo.history)

        result = run_publish(options(dry_run=True), world.deps())

        assert result == Ok(DryRunCompleted(tag="v1.3.0"))
        assert world.manifest.versions == []
        assert world.script.runs == []
        assert world.repo.history == history_before
        assert set(world.repo.tags) == {"v1.2.3", "nightly"}
        assert world.repo.remote_tags == set()
        assert world.repo.pushed_branches == []
        assert world.host.releases == []
        assert world.host.comments == []

    def test_logs_version_notes_and_skips(self) -> None:
        world = _world_after_v123()

        run_publish(options(dry_run=True), world.deps())

        assert 'release type "minor": 1.2.3 -> 1.3.0' in world.console.infos
        assert any(m.startswith("generated release notes:") for m in world.console.infos)
        warnings = world.console.warnings
        assert "skip version bump in package.json in dry-run mode (next: 1.3.0)" in warnings
        assert "skip executing publishing script in dry-run mode" in warnings
        commit_skip = 'skip creating a release commit in dry-run mode: "chore(release): v1.3.0"'
        assert commit_skip in warnings
        assert "skip creating a release tag in dry-run mode: v1.3.0" in warnings
        assert "skip pushing release to Git in dry-run mode" in warnings
        assert "skip creating a GitHub release in dry-run mode" in warnings
        assert 'release "v1.3.0" completed in dry-run mode!' in warnings

    def test_contributors_looked_up_once_per_issue(self) -> None:
        world = _world_after_v123()

        run_publish(options(dry_run=True), world.deps())

        assert sorted(world.host.contributor_calls) == ["10", "11"]


class TestRollback:
    def test_tag_push_failure_reverts_commit_and_local_tag(self) -> None:
        world = _world_after_v123(dirty=True)
        head_before = world.repo.head
        world.repo.failures["push_tag"] = GitError(command="push tag", message="rejected")

        result = run_publish(options(), world.deps())

        assert isinstance(result, Err)
        assert result.error == PipelineStepError(
            step="release tag",
            message="Failed to tag the release!",
            cause="rejected",
            rolled_back=True,
        )
        assert world.repo.head == head_before
        assert "v1.3.0" not in world.repo.tags
        assert "delete_remote_tag" not in world.repo.calls
        assert world.repo.dirty is True
        assert world.repo.stashes == []
        assert world.host.releases == []
        assert "release failed, reverting changes..." in world.console.errors

    def test_release_failure_deletes_pushed_tag(self) -> None:
        world = _world_after_v123()
        world.host.release_error = RemoteError(operation="create release", message="HTTP 422")

        result = run_publish(options(), world.deps())

        assert isinstance(result, Err)
        assert isinstance(result.error, PipelineStepError)
        assert result.error.step == "github release"
        assert world.repo.remote_tags == set()
        assert "v1.3.0" not in world.repo.tags
        calls = world.repo.calls
        assert calls.index("delete_remote_tag") < calls.index("reset_hard")
        assert world.host.comments == []

    def test_commit_failure_has_nothing_to_revert(self) -> None:
        world = _world_after_v123()
        world.repo.failures["commit"] = GitError(command="commit", message="hook failed")

        result = run_publish(options(), world.deps())

        assert isinstance(result, Err)
        assert isinstance(result.error, PipelineStepError)
        assert result.error.step == "release commit"
        assert "reset_hard" not in world.repo.calls
        assert "delete_tag" not in world.repo.calls

    def test_failed_compensation_is_reported(self) -> None:
        world = _world_after_v123()
        world.repo.failures["push"] = GitError(command="push", message="non-fast-forward")
        world.repo.failures["delete_remote_tag"] = GitError(
            command="push --delete", message="network down"
        )

        result = run_publish(options(), world.deps())

        assert isinstance(result, Err)
        assert isinstance(result.error, PipelineStepError)
        assert result.error.step == "push"
        assert result.error.rolled_back is False
        # The commit is still reverted after the tag compensation failed.
        assert "reset_hard" in world.repo.calls
        assert publish_exit_code(result.error) == 1

    def test_unpushed_tag_is_only_deleted_locally(self) -> None:
        world = _world_after_v123()
        world.repo.failures["push_tag"] = GitError(command="push tag", message="rejected")

        run_publish(options(), world.deps())

        assert world.repo.calls[-3:] == ["delete_tag", "has_diff", "reset_hard"]


class TestEarlyFailures:
    def test_missing_github_token(self) -> None:
        world = _first_release_world()
        del world.environ["GITHUB_TOKEN"]

        result = run_publish(options(), world.deps())

        assert isinstance(result, Err)
        assert isinstance(result.error, ConfigurationError)
        assert "GITHUB_TOKEN" in result.error.message
        assert world.repo.calls == []

    def test_invalid_github_token(self) -> None:
        world = _first_release_world()
        world.host.token_error = RemoteError(operation="validate token", message="HTTP 401")

        result = run_publish(options(), world.deps())

        assert isinstance(result, Err)
        assert isinstance(result.error, ConfigurationError)
        assert publish_exit_code(result.error) == 1

    def test_missing_registry_token(self) -> None:
        world = _first_release_world()
        del world.environ["NODE_AUTH_TOKEN"]

        result = run_publish(options(), world.deps())

        assert isinstance(result, Err)
        assert isinstance(result.error, ConfigurationError)
        assert "NODE_AUTH_TOKEN" in result.error.message
        assert world.repo.calls == []

    def test_repository_info_failure(self) -> None:
        world = _first_release_world()
        world.repo.failures["info"] = GitError(command="remote get-url", message="no origin")

        result = run_publish(options(), world.deps())

        assert isinstance(result, Err)
        assert result.error == PipelineStepError(
            step="repository info",
            message="Failed to get Git repository information",
            cause="no origin",
        )

    def test_manifest_failure_stops_before_script(self) -> None:
        world = _first_release_world()
        world.manifest.error = ManifestError("manifest not found: package.json")

        result = run_publish(options(), world.deps())

        assert isinstance(result, Err)
        assert isinstance(result.error, PipelineStepError)
        assert result.error.step == "bump version"
        assert world.script.runs == []

    def test_script_failure_propagates_exit_code(self) -> None:
        world = _first_release_world()
        world.script.returncode = 2

        result = run_publish(options(), world.deps())

        assert result == Err(ScriptExecutionError(command="npm publish", returncode=2))
        assert publish_exit_code(result.error) == 2
        assert "commit" not in world.repo.calls
        assert world.host.releases == []


def test_referenced_issues_are_distinct_in_order() -> None:
    commits = parse_commits(
        [commit(3, "fix: a (#4)", "Closes #2"), commit(2, "feat: b (#2)"), commit(1, "docs: #7")]
    )
    assert referenced_issues(commits) == ("4", "2", "7")
