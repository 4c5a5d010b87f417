"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from push_broadcast.core.config import (
    ConfigurationError,
    DispatchConfig,
    EnvironmentVariableError,
    GatewayConfig,
    MainConfig,
    load_main_config,
    resolve_env_var,
    resolve_env_vars_in_dict,
)

FULL_CONFIG = """\
gateway:
  kind: http
  endpoint: https://push.example.com/v1/multicast
  api_key: ${PUSH_GATEWAY_API_KEY}
  request_timeout_seconds: 5
dispatch:
  batch_limit: 250
  max_concurrency: 8
  batch_timeout_seconds: 20
  broadcast_timeout_seconds: 120
  fail_on_total_gateway_failure: true
storage:
  database_path: /var/lib/push-broadcast/registry.sqlite3
application:
  log_level: DEBUG
  syslog_enabled: false
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "push-broadcast.yaml"
    _ = path.write_text(content)
    return path


class TestDefaults:
    def test_defaults_are_safe(self) -> None:
        config = MainConfig()

        assert config.gateway.kind == "dry_run"
        assert config.dispatch.batch_limit == 500
        assert config.dispatch.max_concurrency == 4
        assert config.dispatch.broadcast_timeout_seconds is None
        assert config.dispatch.fail_on_total_gateway_failure is False
        assert config.storage.database_path is None
        assert config.application.log_level == "INFO"


class TestValidation:
    def test_http_requires_endpoint(self) -> None:
        with pytest.raises(ValidationError, match="endpoint is required"):
            _ = GatewayConfig(kind="http")

    def test_endpoint_must_be_http_url(self) -> None:
        with pytest.raises(ValidationError):
            _ = GatewayConfig(kind="http", endpoint="ftp://push.example.com")

    @pytest.mark.parametrize("limit", [0, 501])
    def test_batch_limit_bounds(self, limit: int) -> None:
        with pytest.raises(ValidationError):
            _ = DispatchConfig(batch_limit=limit)

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _ = MainConfig.model_validate({"dispatch": {"batch_size": 10}})


class TestEnvironmentVariables:
    def test_resolves_reference(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PUSH_GATEWAY_API_KEY", "secret")

        assert resolve_env_var("Bearer ${PUSH_GATEWAY_API_KEY}") == "Bearer secret"

    def test_missing_variable_named_in_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PUSH_GATEWAY_API_KEY", raising=False)

        with pytest.raises(EnvironmentVariableError, match="PUSH_GATEWAY_API_KEY"):
            _ = resolve_env_var("${PUSH_GATEWAY_API_KEY}")

    def test_nested_structures(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("A", "1")

        resolved = resolve_env_vars_in_dict({"x": {"y": "${A}"}, "z": ["${A}", 2, {"w": "${A}"}], "n": 3})

        assert resolved == {"x": {"y": "1"}, "z": ["1", 2, {"w": "1"}], "n": 3}


class TestLoadMainConfig:
    def test_full_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PUSH_GATEWAY_API_KEY", "secret")

        config = load_main_config(_write(tmp_path, FULL_CONFIG))

        assert config.gateway.kind == "http"
        assert config.gateway.api_key == "secret"
        assert config.dispatch.batch_limit == 250
        assert config.dispatch.broadcast_timeout_seconds == 120
        assert config.storage.database_path == Path("/var/lib/push-broadcast/registry.sqlite3")
        assert config.application.log_level == "DEBUG"

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        assert load_main_config(_write(tmp_path, "")) == MainConfig()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="not found"):
            _ = load_main_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Failed to parse YAML"):
            _ = load_main_config(_write(tmp_path, "gateway: [unclosed"))

    def test_root_must_be_mapping(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Expected YAML dictionary"):
            _ = load_main_config(_write(tmp_path, "- a\n- b\n"))

    def test_unset_variable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PUSH_GATEWAY_API_KEY", raising=False)

        with pytest.raises(ConfigurationError, match="PUSH_GATEWAY_API_KEY"):
            _ = load_main_config(_write(tmp_path, FULL_CONFIG))

    def test_field_level_diagnostics(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _ = load_main_config(_write(tmp_path, "dispatch:\n  max_concurrency: 0\n"))

        message = str(exc_info.value)
        assert "Field: dispatch → max_concurrency" in message
        assert "Please fix the above errors" in message
