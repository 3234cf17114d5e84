"""Configuration loader for git-sandbox.

Loads an optional YAML configuration file and applies environment variable
overrides.  The sandbox root (``base_dir``) is the only required value; the
process refuses to start without it.

Environment Variables:
    GIT_MCP_BASE_DIR: Sandbox root directory (required unless set in file)
    GIT_SANDBOX_CONFIG: Path to the YAML configuration file
    GIT_SANDBOX_GIT_BINARY: Git executable (default ``git``)
    GIT_SANDBOX_TIMEOUT: Per-command timeout in seconds (default: none)
    GIT_SANDBOX_HOST / GIT_SANDBOX_PORT: HTTP adapter bind address
    LOG_LEVEL / LOG_FORMAT: Logging level and format (``json`` or ``text``)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from git_sandbox.errors import ConfigurationError

BASE_DIR_ENV = "GIT_MCP_BASE_DIR"
CONFIG_PATH_ENV = "GIT_SANDBOX_CONFIG"

_VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_VALID_LOG_FORMATS = frozenset({"json", "text"})


@dataclass(frozen=True)
class ServerConfig:
    """Validated, immutable server configuration."""

    base_dir: str
    git_binary: str = "git"
    command_timeout: Optional[float] = None
    disable_hooks: bool = True
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    max_log_count: int = 50
    log_level: str = "INFO"
    log_format: str = "json"
    host: str = "127.0.0.1"
    port: int = 8765

    def __post_init__(self):
        """Validate and normalise configuration."""
        if not self.base_dir or not str(self.base_dir).strip():
            raise ConfigurationError(
                f"{BASE_DIR_ENV} is not set. The server cannot operate securely "
                "without a defined base directory."
            )
        # Frozen dataclass: normalise through object.__setattr__.
        object.__setattr__(self, "base_dir", os.path.abspath(str(self.base_dir)))

        if not self.git_binary:
            raise ConfigurationError("git_binary cannot be empty")

        if self.command_timeout is not None and self.command_timeout <= 0:
            raise ConfigurationError(
                f"command_timeout must be positive, got {self.command_timeout}"
            )

        if self.max_log_count <= 0:
            raise ConfigurationError(
                f"max_log_count must be positive, got {self.max_log_count}"
            )

        level = self.log_level.upper()
        if level not in _VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid log_level '{self.log_level}'. "
                f"Valid levels: {', '.join(sorted(_VALID_LOG_LEVELS))}"
            )
        object.__setattr__(self, "log_level", level)

        fmt = self.log_format.lower()
        if fmt not in _VALID_LOG_FORMATS:
            raise ConfigurationError(
                f"Invalid log_format '{self.log_format}': must be 'json' or 'text'"
            )
        object.__setattr__(self, "log_format", fmt)

        if not 0 < self.port < 65536:
            raise ConfigurationError(f"port must be in 1-65535, got {self.port}")

    def with_overrides(self, **overrides: Any) -> "ServerConfig":
        """Return a copy with non-None *overrides* applied (re-validated)."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self


def _load_yaml_file(file_path: str) -> Dict[str, Any]:
    """Load and parse a YAML file.

    Raises:
        ConfigurationError: If the file is missing, unparsable, or not a mapping.
    """
    path = Path(file_path)

    if not path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {file_path}\n"
            f"Hint: override the location with {CONFIG_PATH_ENV}"
        )

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML file {file_path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to read configuration file {file_path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Invalid configuration file {file_path}: expected YAML dictionary, "
            f"got {type(data).__name__}"
        )
    return data


def _env_overrides(env: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if env.get(BASE_DIR_ENV):
        overrides["base_dir"] = env[BASE_DIR_ENV]
    if env.get("GIT_SANDBOX_GIT_BINARY"):
        overrides["git_binary"] = env["GIT_SANDBOX_GIT_BINARY"]
    if env.get("GIT_SANDBOX_HOST"):
        overrides["host"] = env["GIT_SANDBOX_HOST"]
    if env.get("LOG_LEVEL"):
        overrides["log_level"] = env["LOG_LEVEL"]
    if env.get("LOG_FORMAT"):
        overrides["log_format"] = env["LOG_FORMAT"]
    for key, name, cast in (
        ("GIT_SANDBOX_TIMEOUT", "command_timeout", float),
        ("GIT_SANDBOX_PORT", "port", int),
    ):
        raw = env.get(key)
        if raw:
            try:
                overrides[name] = cast(raw)
            except ValueError:
                raise ConfigurationError(f"{key} must be a number, got {raw!r}")
    return overrides


def load_config(
    path: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ServerConfig:
    """Load and validate the server configuration.

    Args:
        path: Optional YAML file.  Falls back to ``GIT_SANDBOX_CONFIG``.
        env: Environment mapping (defaults to ``os.environ``).

    Returns:
        Validated ServerConfig.

    Raises:
        ConfigurationError: If the file is invalid, contains unknown keys,
            or no sandbox root is configured.
    """
    env = os.environ if env is None else env
    values: Dict[str, Any] = {}

    config_path = path or (env.get(CONFIG_PATH_ENV) or None)
    if config_path:
        values.update(_load_yaml_file(config_path))
        known = {f.name for f in fields(ServerConfig)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys in {config_path}: {', '.join(unknown)}"
            )

    values.update(_env_overrides(env))
    values.setdefault("base_dir", "")

    try:
        return ServerConfig(**values)
    except (TypeError, AttributeError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}")
