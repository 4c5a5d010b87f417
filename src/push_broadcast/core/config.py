"""Configuration system for push-broadcast.

This module implements the configuration schema using Pydantic for
validation, with support for environment variable resolution and fail-fast
validation with actionable error messages.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Final, Literal, Self

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from push_broadcast.core.batcher import DEFAULT_BATCH_LIMIT

# Regular expression pattern for environment variable references
# Matches ${VARIABLE_NAME} syntax where VARIABLE_NAME can contain letters, digits, and underscores
ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Z0-9_]+)\}")


class _Section(BaseModel):
    model_config: ConfigDict = ConfigDict(  # pyright: ignore[reportIncompatibleVariableOverride]
        extra="forbid",
        validate_assignment=True,
        str_strip_whitespace=True,
    )


class GatewayConfig(_Section):
    """Configuration for the push gateway client.

    ``dry_run`` logs notifications instead of sending them and reports every
    token as delivered.
    """

    kind: Annotated[
        Literal["http", "dry_run"],
        Field(description="Gateway implementation"),
    ] = "dry_run"
    endpoint: Annotated[
        str | None,
        Field(
            description="Multicast endpoint URL of the push gateway",
            pattern=r"^https?://",
        ),
    ] = None
    api_key: Annotated[
        str | None,
        Field(description="Bearer credential sent to the gateway"),
    ] = None
    request_timeout_seconds: Annotated[
        float,
        Field(gt=0, le=300, description="HTTP timeout for one multicast call"),
    ] = 10.0

    @model_validator(mode="after")
    def validate_endpoint_for_http(self) -> Self:
        """Require an endpoint when the HTTP gateway is selected."""
        if self.kind == "http" and not self.endpoint:
            msg = "gateway.endpoint is required when gateway.kind is 'http'"
            raise ValueError(msg)
        return self


class DispatchConfig(_Section):
    """Configuration for batching and concurrent fan-out."""

    batch_limit: Annotated[
        int,
        Field(
            ge=1,
            le=DEFAULT_BATCH_LIMIT,
            description="Maximum tokens per multicast call (gateway maximum)",
        ),
    ] = DEFAULT_BATCH_LIMIT
    max_concurrency: Annotated[
        int,
        Field(ge=1, le=64, description="Batches dispatched in parallel"),
    ] = 4
    batch_timeout_seconds: Annotated[
        float,
        Field(gt=0, le=600, description="Timeout for a single batch dispatch"),
    ] = 30.0
    broadcast_timeout_seconds: Annotated[
        float | None,
        Field(gt=0, description="Stop waiting for batches after this many seconds"),
    ] = None
    fail_on_total_gateway_failure: Annotated[
        bool,
        Field(description="Report FAILED when every batch fails at the gateway"),
    ] = False


class StorageConfig(_Section):
    """Configuration for the registration and audit database."""

    database_path: Annotated[
        Path | None,
        Field(description="SQLite database file; null keeps everything in memory"),
    ] = None


class ApplicationConfig(_Section):
    """Configuration for application-level settings."""

    log_level: Annotated[
        str,
        Field(
            description="Logging level",
            pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        ),
    ] = "INFO"
    syslog_enabled: Annotated[
        bool,
        Field(description="Enable syslog integration"),
    ] = False


class MainConfig(_Section):
    """Main application configuration schema.

    Top-level container aggregating all configuration sections:
    - gateway: Push gateway selection and credentials
    - dispatch: Batching and concurrency limits
    - storage: Registration and audit persistence
    - application: Logging settings
    """

    gateway: Annotated[
        GatewayConfig,
        Field(default_factory=GatewayConfig, description="Push gateway configuration"),
    ]
    dispatch: Annotated[
        DispatchConfig,
        Field(default_factory=DispatchConfig, description="Dispatch configuration"),
    ]
    storage: Annotated[
        StorageConfig,
        Field(default_factory=StorageConfig, description="Storage configuration"),
    ]
    application: Annotated[
        ApplicationConfig,
        Field(default_factory=ApplicationConfig, description="Application-level configuration"),
    ]


class EnvironmentVariableError(Exception):
    """Raised when an environment variable reference cannot be resolved.

    The message names the variable but never its value.
    """


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""


def resolve_env_var(value: str) -> str:
    """Resolve ``${VARIABLE_NAME}`` references in a string value.

    Raises:
        EnvironmentVariableError: If a referenced variable is not set

    Examples:
        >>> os.environ["PUSH_GATEWAY_API_KEY"] = "secret"
        >>> resolve_env_var("${PUSH_GATEWAY_API_KEY}")
        'secret'
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)

        if env_value is None:
            msg = (
                f"Required environment variable '{var_name}' is not set. "
                f"Please set this variable before starting the application."
            )
            raise EnvironmentVariableError(msg)

        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def resolve_env_vars_in_dict(data: Mapping[str, object]) -> dict[str, object]:
    """Recursively resolve environment variables in a dictionary.

    Traverses nested dictionaries and lists, resolving references in string
    values. Non-string values are preserved as-is.

    Raises:
        EnvironmentVariableError: If a referenced variable is not set
    """
    result: dict[str, object] = {}

    for key, value in data.items():
        if isinstance(value, str):
            result[key] = resolve_env_var(value)
        elif isinstance(value, dict):
            # YAML data is untyped at load time; validated by Pydantic after resolution
            result[key] = resolve_env_vars_in_dict(value)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
        elif isinstance(value, list):
            resolved_list: list[object] = []
            for item in value:  # pyright: ignore[reportUnknownVariableType]  # YAML list items
                if isinstance(item, str):
                    resolved_list.append(resolve_env_var(item))
                elif isinstance(item, dict):
                    resolved_list.append(resolve_env_vars_in_dict(item))  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
                else:
                    resolved_list.append(item)  # pyright: ignore[reportUnknownArgumentType]  # YAML primitives
            result[key] = resolved_list
        else:
            result[key] = value

    return result


def _format_validation_error(error: ValidationError, config_path: Path) -> str:
    error_lines = ["Configuration validation failed:", ""]
    for detail in error.errors():
        field_path = " → ".join(str(loc) for loc in detail["loc"])
        error_lines.append(f"  Field: {field_path}")
        error_lines.append(f"  Error: {detail['msg']}")
        error_lines.append(f"  Type: {detail['type']}")
        error_lines.append("")

    error_lines.append(f"Configuration file: {config_path}")
    error_lines.append("Please fix the above errors and try again.")
    return "\n".join(error_lines)


def load_main_config(config_path: Path) -> MainConfig:
    """Load and validate application configuration from a YAML file.

    Args:
        config_path: Path to the configuration YAML file

    Returns:
        Validated MainConfig instance

    Raises:
        ConfigurationError: If the file cannot be loaded, references an unset
            environment variable, or is invalid
    """
    if not config_path.exists():
        msg = (
            f"Configuration file not found: {config_path}\n"
            f"Please create a configuration file at this location."
        )
        raise ConfigurationError(msg)

    try:
        with config_path.open("r") as f:
            raw_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
    except yaml.YAMLError as e:
        msg = (
            f"Failed to parse YAML configuration file: {config_path}\n"
            f"YAML parsing error: {e}\n"
            f"Please check the file for syntax errors."
        )
        raise ConfigurationError(msg) from e
    except OSError as e:
        msg = f"Failed to read configuration file: {config_path}\nError: {e}\nPlease check file permissions."
        raise ConfigurationError(msg) from e

    # An empty file means "all defaults"
    if raw_data is None:
        raw_data = {}

    if not isinstance(raw_data, dict):
        msg = (
            f"Invalid configuration file format: {config_path}\n"
            f"Expected YAML dictionary at root level, got: {type(raw_data).__name__}\n"
            f"Configuration file must contain key-value pairs."
        )
        raise ConfigurationError(msg)

    try:
        resolved_data = resolve_env_vars_in_dict(raw_data)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    except EnvironmentVariableError as e:
        msg = (
            f"Environment variable resolution failed in: {config_path}\n"
            f"{e}\n"
            f"Set the required environment variable before starting the application."
        )
        raise ConfigurationError(msg) from e

    try:
        return MainConfig.model_validate(resolved_data)
    except ValidationError as e:
        raise ConfigurationError(_format_validation_error(e, config_path)) from e
