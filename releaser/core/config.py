"""Typed configuration loading and access.

This module provides dataclasses for the ``release.toml`` structure with
full type safety and validation.

Example:

    tag_prefix = "v"
    manifest = "package.json"

    [[profiles]]
    name = "latest"
    use = "npm publish"

    [[profiles]]
    name = "next"
    use = "npm publish --tag next"
    prerelease = true
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_bool, get_list, get_str

__all__ = [
    "CONFIG_FILE_NAME",
    "DEFAULT_REGISTRY_TOKEN_ENV",
    "ConfigError",
    "Profile",
    "ReleaseConfig",
    "find_profile",
    "load_config",
]

CONFIG_FILE_NAME = "release.toml"
DEFAULT_TAG_PREFIX = "v"

# Any one of these satisfies the registry credential requirement.
DEFAULT_REGISTRY_TOKEN_ENV: tuple[str, ...] = (
    "NODE_AUTH_TOKEN",
    "NPM_AUTH_TOKEN",
    "UV_PUBLISH_TOKEN",
    "TWINE_PASSWORD",
)


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class Profile:
    """Named publish configuration.

    Attributes:
        name: Profile name selected with ``--profile``
        use: Shell command that publishes the package
        prerelease: Never bump the major version from breaking changes
    """

    name: str
    use: str
    prerelease: bool = False


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    """Main configuration container."""

    profiles: tuple[Profile, ...]
    tag_prefix: str = DEFAULT_TAG_PREFIX
    manifest: str | None = None
    registry_token_env: tuple[str, ...] = DEFAULT_REGISTRY_TOKEN_ENV

    @property
    def profile_names(self) -> tuple[str, ...]:
        return tuple(p.name for p in self.profiles)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Result[ReleaseConfig, str]:
        """Create a ReleaseConfig from a mapping (parsed TOML)."""
        raw_profiles = get_list(data, "profiles")
        if raw_profiles is None:
            return Err("missing [[profiles]] table array")

        profiles: list[Profile] = []
        for index, item in enumerate(raw_profiles):
            table = as_str_dict(item)
            if table is None:
                return Err(f"profiles[{index}] must be a table")
            name = get_str(table, "name")
            use = get_str(table, "use")
            if name is None or use is None:
                return Err(f'profiles[{index}] requires both "name" and "use"')
            profiles.append(
                Profile(name=name, use=use, prerelease=get_bool(table, "prerelease") or False)
            )

        token_env = DEFAULT_REGISTRY_TOKEN_ENV
        raw_token_env = get_list(data, "registry_token_env")
        if raw_token_env is not None:
            names = tuple(v.strip() for v in raw_token_env if isinstance(v, str) and v.strip())
            if not names:
                return Err("registry_token_env must list at least one variable name")
            token_env = names

        tag_prefix = data.get("tag_prefix", DEFAULT_TAG_PREFIX)
        if not isinstance(tag_prefix, str):
            return Err("tag_prefix must be a string")

        return Ok(
            cls(
                profiles=tuple(profiles),
                tag_prefix=tag_prefix.strip(),
                manifest=get_str(data, "manifest"),
                registry_token_env=token_env,
            )
        )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[ReleaseConfig, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to release.toml

    Returns:
        Ok(ReleaseConfig) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    config = ReleaseConfig.from_dict(result.value)
    if isinstance(config, Err):
        return Err(ConfigError(f"Invalid config structure: {config.error}", path=path))
    return config


def find_profile(config: ReleaseConfig, name: str) -> Profile | None:
    """Return the profile called ``name``, if defined."""
    for profile in config.profiles:
        if profile.name == name:
            return profile
    return None
