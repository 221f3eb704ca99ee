"""Core types: results, exit codes, configuration."""

from .config import ConfigError, Profile, ReleaseConfig, find_profile, load_config
from .errors import ErrorCode
from .result import Err, Ok, Result

__all__ = [
    # config
    "ConfigError",
    "Profile",
    "ReleaseConfig",
    "find_profile",
    "load_config",
    # errors
    "ErrorCode",
    # result
    "Err",
    "Ok",
    "Result",
]
