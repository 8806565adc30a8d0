"""
Configuration management for the relay.

Settings come from four places, highest precedence first:
1. Command-line flags
2. Environment variables (flag name upper-cased, dashes as underscores)
3. A YAML/JSON config file passed via --config
4. Built-in defaults

The merged result is a frozen RelayConfig built once at startup and passed
explicitly to everything that needs it.
"""

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml


# Parameter names, shared by flags, env vars and config file keys
PARAM_CONFIG = "config"
PARAM_LOG_FORMAT = "log-format"
PARAM_LOG_LEVEL = "log-level"
PARAM_FROM_PROJECT = "from-google-cloud-project"
PARAM_TO_PROJECT = "to-google-cloud-project"
PARAM_FROM_CREDENTIALS = "from-google-application-credentials-json"
PARAM_TO_CREDENTIALS = "to-google-application-credentials-json"
PARAM_SUBSCRIPTION = "pubsub-subscription"
PARAM_DESTINATION_TOPIC = "pubsub-destination-topic"
PARAM_MAX_OUTSTANDING = "pubsub-max-outstanding-messages"

DEFAULT_LOG_FORMAT = "json"
DEFAULT_LOG_LEVEL = "debug"
DEFAULT_MAX_OUTSTANDING_MESSAGES = 10

LOG_FORMATS = ("json", "text")

# RelayConfig field -> parameter name
FIELD_PARAMS = {
    "log_format": PARAM_LOG_FORMAT,
    "log_level": PARAM_LOG_LEVEL,
    "from_project": PARAM_FROM_PROJECT,
    "to_project": PARAM_TO_PROJECT,
    "from_credentials": PARAM_FROM_CREDENTIALS,
    "to_credentials": PARAM_TO_CREDENTIALS,
    "subscription": PARAM_SUBSCRIPTION,
    "destination_topic": PARAM_DESTINATION_TOPIC,
    "max_outstanding_messages": PARAM_MAX_OUTSTANDING,
}

# Checked in this order; the first empty one is reported
REQUIRED_PARAMS = (
    PARAM_FROM_PROJECT,
    PARAM_TO_PROJECT,
    PARAM_SUBSCRIPTION,
    PARAM_DESTINATION_TOPIC,
)

_SECRET_PARAMS = {PARAM_FROM_CREDENTIALS, PARAM_TO_CREDENTIALS}


class ConfigError(Exception):
    """Configuration could not be loaded or is invalid."""


class MissingConfigError(ConfigError):
    """A required setting is empty."""

    def __init__(self, param: str) -> None:
        self.param = param
        super().__init__(f"{env_name(param)} variable must be set.")


def env_name(param: str) -> str:
    """Environment variable name for a parameter (log-level -> LOG_LEVEL)."""
    return param.replace("-", "_").upper()


def read_config_file(path: str) -> dict[str, Any]:
    """
    Read a YAML or JSON config file keyed by parameter name.

    Keys may use dashes or underscores. An empty file yields an empty dict.

    Raises:
        ConfigError: If the file is missing, unparsable, or not a mapping
    """
    try:
        raw = yaml.safe_load(Path(path).read_text())
    except OSError as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    return {str(key).replace("_", "-"): value for key, value in raw.items()}


@dataclass(frozen=True)
class RelayConfig:
    """Relay configuration."""

    from_project: str = ""
    to_project: str = ""
    subscription: str = ""
    destination_topic: str = ""

    # Raw service account / authorized user JSON, one per side
    from_credentials: str = ""
    to_credentials: str = ""

    max_outstanding_messages: int = DEFAULT_MAX_OUTSTANDING_MESSAGES

    log_format: str = DEFAULT_LOG_FORMAT
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def load(
        cls,
        flags: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> "RelayConfig":
        """
        Merge flags, environment, config file and defaults.

        Args:
            flags: Parameter name -> value for flags given on the command
                line. Unset flags are absent or None.
            environ: Environment mapping (defaults to os.environ)

        Raises:
            ConfigError: If the config file can't be read or a value is invalid
        """
        flags = {k: v for k, v in (flags or {}).items() if v is not None}
        environ = os.environ if environ is None else environ

        config_path = flags.get(PARAM_CONFIG) or environ.get(env_name(PARAM_CONFIG), "")
        file_values = read_config_file(config_path) if config_path else {}

        def lookup(param: str) -> Any:
            if param in flags:
                return flags[param]
            if env_name(param) in environ:
                return environ[env_name(param)]
            return file_values.get(param)

        values: dict[str, Any] = {}
        for f in fields(cls):
            value = lookup(FIELD_PARAMS[f.name])
            if value is not None:
                values[f.name] = value

        if "max_outstanding_messages" in values:
            values["max_outstanding_messages"] = _parse_positive_int(
                PARAM_MAX_OUTSTANDING, values["max_outstanding_messages"]
            )
        for name, value in values.items():
            if name == "max_outstanding_messages":
                continue
            # Credentials may be inlined in the config file as a mapping
            if isinstance(value, dict):
                values[name] = json.dumps(value)
            else:
                values[name] = str(value)

        config = cls(**values)
        if config.log_format not in LOG_FORMATS:
            raise ConfigError(
                f"Invalid {PARAM_LOG_FORMAT} '{config.log_format}'. Valid: {', '.join(LOG_FORMATS)}"
            )
        return config

    def validate(self) -> None:
        """Raise MissingConfigError for the first empty required setting."""
        for param in REQUIRED_PARAMS:
            if not self.get(param):
                raise MissingConfigError(param)

    def get(self, param: str) -> Any:
        """Look up a setting by its parameter name."""
        for name, p in FIELD_PARAMS.items():
            if p == param:
                return getattr(self, name)
        raise KeyError(param)

    def redacted(self) -> dict[str, Any]:
        """Settings keyed by parameter name, credential blobs masked."""
        result = {}
        for name, param in FIELD_PARAMS.items():
            value = getattr(self, name)
            if param in _SECRET_PARAMS:
                value = "<redacted>" if value else ""
            result[param] = value
        return result


def _parse_positive_int(param: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid {param} '{value}': must be an integer") from e
    if number < 1:
        raise ConfigError(f"Invalid {param} '{value}': must be at least 1")
    return number
