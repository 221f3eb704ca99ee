from __future__ import annotations

from collections.abc import Mapping, Sequence

from releaser.core.result import Err, Ok, Result
from releaser.release.errors import ConfigurationError
from releaser.release.github import RemoteHost

GITHUB_TOKEN_ENV = "GITHUB_TOKEN"


def _quoted(names: Sequence[str]) -> str:
    quoted = [f'"{n}"' for n in names]
    if len(quoted) <= 2:
        return " nor ".join(quoted)
    return ", ".join(quoted[:-1]) + f" nor {quoted[-1]}"


def demand_github_token(
    environ: Mapping[str, str], host: RemoteHost
) -> Result[str, ConfigurationError]:
    """Require a working ``GITHUB_TOKEN``. Returns the authenticated login."""
    if not environ.get(GITHUB_TOKEN_ENV, "").strip():
        return Err(
            ConfigurationError(
                message=(
                    "Failed to publish the package: the "
                    f'"{GITHUB_TOKEN_ENV}" environment variable is not provided.'
                ),
                hint="Create a token with the 'repo' scope and export it as GITHUB_TOKEN",
            )
        )

    login = host.validate_token()
    if isinstance(login, Err):
        return Err(
            ConfigurationError(
                message=(
                    "Failed to publish the package: invalid GitHub token "
                    f"({login.error.message})"
                ),
                hint=login.error.hint,
            )
        )
    return Ok(login.value)


def demand_registry_token(
    environ: Mapping[str, str], names: Sequence[str]
) -> Result[str, ConfigurationError]:
    """Require one of ``names`` to be set. Returns the first one found."""
    for name in names:
        if environ.get(name, "").strip():
            return Ok(name)
    return Err(
        ConfigurationError(
            message=(
                "Failed to publish the package: neither "
                f"{_quoted(names)} environment variables were provided."
            ),
            hint="Set registry_token_env in release.toml if your registry uses another variable",
        )
    )


def demand_credentials(
    environ: Mapping[str, str],
    host: RemoteHost,
    registry_token_env: Sequence[str],
) -> Result[None, ConfigurationError]:
    github = demand_github_token(environ, host)
    if isinstance(github, Err):
        return github
    registry = demand_registry_token(environ, registry_token_env)
    if isinstance(registry, Err):
        return registry
    return Ok(None)
