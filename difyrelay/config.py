# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Relay configuration.

Settings come from two sources, in increasing precedence:

1. Environment variables (``SLACK_BOT_TOKEN``, ``DIFY_API_KEY``, ...),
   after ``.env`` files have been loaded.
2. An optional YAML file.  The default location follows the XDG Base
   Directory Specification:

       ``$XDG_CONFIG_HOME/difyrelay/difyrelay.yaml``
       (typically ``~/.config/difyrelay/difyrelay.yaml``)

Only non-empty file values override the environment.  ``!env`` tags in
the file resolve values from environment variables.

Example file::

    slack:
      bot_token: !env SLACK_BOT_TOKEN
      app_token: !env SLACK_APP_TOKEN
      bot_name: relaybot
      reply_in_thread: true
    dify:
      api_key: !env DIFY_API_KEY
      base_url: https://dify.internal.example.com
      timeout: 90
    relay:
      max_concurrent_tasks: 16
      shutdown_timeout: 30
    logging:
      level: info
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from platformdirs import user_config_path

from difyrelay.completion.config import DEFAULT_BASE_URL, DifyConfig
from difyrelay.dotenv_loader import load_dotenv_once
from difyrelay.logging import parse_level
from difyrelay.slack.config import SlackChannelConfig


logger = logging.getLogger(__name__)

#: Application name for XDG path resolution.
_APP_NAME = "difyrelay"

_BOOL_TRUTHY = frozenset({"true", "1", "yes", "on"})
_BOOL_FALSY = frozenset({"false", "0", "no", "off"})


def get_config_path() -> Path:
    """Return the default config file path.

    Returns:
        ``$XDG_CONFIG_HOME/difyrelay/difyrelay.yaml``.
    """
    return user_config_path(_APP_NAME) / "difyrelay.yaml"


def get_dotenv_path() -> Path:
    """Return the ``.env`` file path inside the XDG config directory."""
    return user_config_path(_APP_NAME) / ".env"


class ConfigError(Exception):
    """Base exception for configuration errors."""


class _EnvVar:
    """Placeholder for an unresolved ``!env VAR_NAME`` tag."""

    def __init__(self, var_name: str) -> None:
        self.var_name = var_name


def _env_constructor(loader: yaml.SafeLoader, node: yaml.Node) -> _EnvVar:
    """Handle ``!env VAR_NAME`` in YAML."""
    value = loader.construct_scalar(node)  # type: ignore[arg-type]
    return _EnvVar(str(value))


def _make_loader() -> type[yaml.SafeLoader]:
    """Create a YAML loader that understands ``!env``."""

    class EnvLoader(yaml.SafeLoader):
        pass

    EnvLoader.add_constructor("!env", _env_constructor)
    return EnvLoader


def _coerce_bool(value: object) -> bool:
    """Coerce a value to bool, handling string representations."""
    if isinstance(value, bool):
        return value
    s = str(value).lower().strip()
    if s in _BOOL_TRUTHY:
        return True
    if s in _BOOL_FALSY:
        return False
    raise ConfigError(f"Cannot convert {value!r} to bool")


def _raw_resolve(value: object) -> str | None:
    """Resolve an ``_EnvVar`` to its string value, or stringify literals.

    Returns None when the value is None, empty, or names an unset
    environment variable.
    """
    if isinstance(value, _EnvVar):
        value = os.environ.get(value.var_name)
    if value is None:
        return None
    resolved = str(value).strip()
    return resolved or None


def _pick(file_value: object, env_name: str) -> str | None:
    """Return the file value if non-empty, else the environment value."""
    resolved = _raw_resolve(file_value)
    if resolved is not None:
        return resolved
    return _raw_resolve(os.environ.get(env_name))


def _coerce(
    value: str | None, coerce: type[Any], name: str, default: Any
) -> Any:
    """Coerce a resolved string to the target type.

    Raises:
        ConfigError: If the value cannot be converted.
    """
    if value is None:
        return default
    if coerce is bool:
        return _coerce_bool(value)
    try:
        return coerce(value)
    except ValueError as e:
        raise ConfigError(
            f"Config '{name}' must be {coerce.__name__}: {value!r}"
        ) from e


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a YAML mapping")
    return value


@dataclass(frozen=True)
class RelayConfig:
    """Complete relay configuration, built once at startup.

    Attributes:
        slack: Slack channel settings.
        dify: Completion backend settings.
        max_concurrent_tasks: Worker threads running relay tasks.
            Accepted events beyond this many wait in the executor queue.
        shutdown_timeout_seconds: Drain deadline on shutdown.
        log_level: Root log level.
    """

    slack: SlackChannelConfig
    dify: DifyConfig
    max_concurrent_tasks: int = 16
    shutdown_timeout_seconds: float = 30.0
    log_level: int = logging.INFO

    def __post_init__(self) -> None:
        """Validate relay limits.

        Raises:
            ConfigError: If a limit is out of range.
        """
        if self.max_concurrent_tasks < 1:
            raise ConfigError(
                f"Max concurrent tasks must be >= 1: "
                f"{self.max_concurrent_tasks}"
            )
        if self.shutdown_timeout_seconds <= 0:
            raise ConfigError(
                f"Shutdown timeout must be > 0s: "
                f"{self.shutdown_timeout_seconds}"
            )

    @classmethod
    def load(cls, config_path: Path | None = None) -> "RelayConfig":
        """Load configuration from the environment and optional YAML file.

        A ``.env`` file is loaded first if present.  When *config_path*
        is None, the XDG default is used if it exists; an explicit path
        must exist.

        Args:
            config_path: Path to a YAML config file.

        Returns:
            RelayConfig instance.

        Raises:
            ConfigError: If the file is unreadable or required values
                are absent.
        """
        load_dotenv_once(get_dotenv_path())

        raw: dict = {}
        if config_path is None:
            default_path = get_config_path()
            if default_path.exists():
                config_path = default_path
        elif not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        if config_path is not None:
            with open(config_path) as f:
                try:
                    loaded = yaml.load(f, Loader=_make_loader())
                except yaml.YAMLError as e:
                    raise ConfigError(
                        f"Cannot parse config file {config_path}: {e}"
                    ) from e
            if loaded is not None and not isinstance(loaded, dict):
                raise ConfigError(
                    f"Config file must be a YAML mapping: {config_path}"
                )
            raw = loaded or {}
            logger.info("Loaded config file %s", config_path)

        return cls._from_raw(raw)

    @classmethod
    def _from_raw(cls, raw: dict) -> "RelayConfig":
        """Build config from a parsed (but unresolved) YAML dict."""
        slack = _section(raw, "slack")
        dify = _section(raw, "dify")
        relay = _section(raw, "relay")
        log = _section(raw, "logging")

        required = {
            "SLACK_BOT_TOKEN": _pick(slack.get("bot_token"), "SLACK_BOT_TOKEN"),
            "SLACK_APP_TOKEN": _pick(slack.get("app_token"), "SLACK_APP_TOKEN"),
            "DIFY_API_KEY": _pick(dify.get("api_key"), "DIFY_API_KEY"),
        }
        for name, value in required.items():
            if not value:
                raise ConfigError(f"{name} is required")

        level_name = _raw_resolve(log.get("level")) or "info"
        try:
            log_level = parse_level(level_name)
        except ValueError as e:
            raise ConfigError(str(e)) from e

        try:
            return cls(
                slack=SlackChannelConfig(
                    bot_token=required["SLACK_BOT_TOKEN"] or "",
                    app_token=required["SLACK_APP_TOKEN"] or "",
                    bot_name=_pick(slack.get("bot_name"), "SLACK_BOT_NAME")
                    or "",
                    reply_in_thread=_coerce(
                        _pick(
                            slack.get("reply_in_thread"),
                            "SLACK_REPLY_IN_THREAD",
                        ),
                        bool,
                        "slack.reply_in_thread",
                        False,
                    ),
                ),
                dify=DifyConfig(
                    api_key=required["DIFY_API_KEY"] or "",
                    base_url=(
                        _pick(dify.get("base_url"), "DIFY_BASE_URL")
                        or DEFAULT_BASE_URL
                    ).rstrip("/"),
                    timeout_seconds=_coerce(
                        _pick(dify.get("timeout"), "DIFY_TIMEOUT"),
                        float,
                        "dify.timeout",
                        60.0,
                    ),
                ),
                max_concurrent_tasks=_coerce(
                    _raw_resolve(relay.get("max_concurrent_tasks")),
                    int,
                    "relay.max_concurrent_tasks",
                    16,
                ),
                shutdown_timeout_seconds=_coerce(
                    _raw_resolve(relay.get("shutdown_timeout")),
                    float,
                    "relay.shutdown_timeout",
                    30.0,
                ),
                log_level=log_level,
            )
        except ValueError as e:
            raise ConfigError(str(e)) from e
