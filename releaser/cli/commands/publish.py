from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import NoReturn

import typer

from releaser.cli.context import build_context
from releaser.core.config import CONFIG_FILE_NAME, find_profile, load_config
from releaser.core.result import Err, Result
from releaser.git.repository import Repository
from releaser.output.console import ConsoleProtocol
from releaser.platform.process import ProcessError, run_streaming
from releaser.release.errors import (
    ConfigurationError,
    PublishError,
    print_publish_error,
    publish_exit_code,
)
from releaser.release.github import GhRemoteHost
from releaser.release.manifest import open_manifest
from releaser.release.pipeline import (
    Collaborators,
    PublishOptions,
    ScriptRunner,
    run_publish,
)


def _fail(error: PublishError, console: ConsoleProtocol) -> NoReturn:
    print_publish_error(error, console)
    raise typer.Exit(code=publish_exit_code(error))


def _script_runner(root: Path) -> ScriptRunner:
    def run(command: str, env: Mapping[str, str]) -> Result[None, ProcessError]:
        return run_streaming(command, cwd=root, env=env)

    return run


def publish(
    profile: str = typer.Option("latest", "--profile", "-p", help="Profile from release.toml"),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-d", help="Print command steps without executing them"
    ),
    config: Path | None = typer.Option(
        None, "--config", help=f"Path to {CONFIG_FILE_NAME} (default: ./{CONFIG_FILE_NAME})"
    ),
) -> None:
    """Publish the package."""
    ctx = build_context()
    console = ctx.console

    config_path = config if config is not None else ctx.root / CONFIG_FILE_NAME
    loaded = load_config(config_path)
    if isinstance(loaded, Err):
        _fail(
            ConfigurationError(
                message=f"Failed to publish: {loaded.error.message}",
                hint=f"Define your publish profiles in {CONFIG_FILE_NAME}",
            ),
            console,
        )
    release_config = loaded.value

    selected = find_profile(release_config, profile)
    if selected is None:
        known = ", ".join(release_config.profile_names) or "none"
        _fail(
            ConfigurationError(
                message=(
                    f'Failed to publish: no profile found by name "{profile}". '
                    f'Did you forget to define it in "{CONFIG_FILE_NAME}"?'
                ),
                hint=f"defined profiles: {known}",
            ),
            console,
        )

    manifest = open_manifest(ctx.root, release_config.manifest)
    if isinstance(manifest, Err):
        _fail(ConfigurationError(message=f"Failed to publish: {manifest.error.message}"), console)

    environ = dict(os.environ)
    deps = Collaborators(
        repo=Repository(ctx.root),
        host=GhRemoteHost(ctx.root, env=environ),
        manifest=manifest.value,
        console=console,
        run_script=_script_runner(ctx.root),
        environ=environ,
    )
    options = PublishOptions(
        profile=selected,
        dry_run=dry_run,
        tag_prefix=release_config.tag_prefix,
        registry_token_env=release_config.registry_token_env,
    )

    result = run_publish(options, deps)
    if isinstance(result, Err):
        _fail(result.error, console)
