"""Tests for the config loader module."""

from pathlib import Path

import pytest
import yaml

from chatrelay.config_loader import (
    _substitute_env_vars,
    load_config,
    resolve_config_path,
    resolve_env_path,
    server_address,
)
from chatrelay.core import ChatGateway


def _write_config(directory: Path, data: dict, name: str = "config_test.yaml") -> Path:
    path = directory / name
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests for loading configuration from YAML files."""

    def test_loads_simple_config(self, tmp_path):
        path = _write_config(tmp_path, {"upstreams": [{"name": "you", "api_base": "https://you.example"}]})
        result = load_config(str(path))
        assert result["upstreams"][0]["name"] == "you"

    def test_raises_error_for_missing_config(self):
        with pytest.raises(RuntimeError, match="Config file not found"):
            load_config("/nonexistent/path/config.yaml")

    def test_rejects_non_mapping_document(self, tmp_path):
        path = tmp_path / "config_list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(RuntimeError, match="must contain a mapping"):
            load_config(str(path))

    def test_empty_file_is_empty_mapping(self, tmp_path):
        path = tmp_path / "config_empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(str(path)) == {}

    def test_substitutes_environment_variables(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_API_KEY", "my-secret-key")
        path = _write_config(tmp_path, {"upstreams": [{"api_key": "${TEST_API_KEY}"}]})
        result = load_config(str(path))
        assert result["upstreams"][0]["api_key"] == "my-secret-key"

    def test_substitutes_simple_env_var_syntax(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SIMPLE_VAR", "simple-value")
        path = _write_config(tmp_path, {"value": "prefix-$SIMPLE_VAR"})
        assert load_config(str(path))["value"] == "prefix-simple-value"

    def test_preserves_undefined_env_vars(self, tmp_path, monkeypatch):
        monkeypatch.delenv("UNDEFINED_VAR", raising=False)
        path = _write_config(tmp_path, {"value": "${UNDEFINED_VAR}"})
        assert load_config(str(path))["value"] == "${UNDEFINED_VAR}"

    def test_env_file_takes_priority(self, tmp_path, monkeypatch):
        monkeypatch.setenv("UPSTREAM_BASE", "https://from-process.example")
        (tmp_path / ".env_test").write_text("UPSTREAM_BASE=https://from-env-file.example\n", encoding="utf-8")
        path = _write_config(tmp_path, {"base": "${UPSTREAM_BASE}"})
        assert load_config(str(path))["base"] == "https://from-env-file.example"

    def test_substitution_can_be_disabled(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_API_KEY", "my-secret-key")
        path = _write_config(tmp_path, {"value": "${TEST_API_KEY}"})
        assert load_config(str(path), substitute_env=False)["value"] == "${TEST_API_KEY}"

    def test_config_path_from_environment(self, tmp_path, monkeypatch):
        path = _write_config(tmp_path, {"marker": "from-env"})
        monkeypatch.setenv("CHATRELAY_CONFIG", str(path))
        assert load_config()["marker"] == "from-env"

    def test_default_config_builds_a_gateway(self, monkeypatch):
        monkeypatch.delenv("CHATRELAY_CONFIG", raising=False)
        gateway = ChatGateway(load_config())
        assert gateway.default_model == "deepseek-chat"
        assert gateway.default_upstream.name == "you"
        assert gateway.route("deepseek-v3").name == "edgeone"


class TestPathResolution:
    def test_absolute_path_unchanged(self, tmp_path):
        assert resolve_config_path(str(tmp_path / "c.yaml")) == tmp_path / "c.yaml"

    def test_relative_path_is_under_project_root(self):
        resolved = resolve_config_path("configs/config_default.yaml")
        assert resolved.is_absolute()
        assert resolved.parts[-2:] == ("configs", "config_default.yaml")

    def test_env_file_pairs_with_config_suffix(self, tmp_path):
        assert resolve_env_path(tmp_path / "config_prod.yaml") == tmp_path / ".env_prod"
        assert resolve_env_path(tmp_path / "gateway.yaml") == tmp_path / ".env"


class TestSubstituteEnvVars:
    """Tests for the _substitute_env_vars function."""

    def test_substitutes_nested_values(self, monkeypatch):
        monkeypatch.setenv("NESTED_VAR", "nested-value")
        data = {"level1": {"level2": ["${NESTED_VAR}", 3]}}
        assert _substitute_env_vars(data) == {"level1": {"level2": ["nested-value", 3]}}

    def test_preserves_non_string_values(self):
        data = {"number": 42, "boolean": True, "null": None}
        assert _substitute_env_vars(data) == data

    def test_explicit_values_override_environment(self, monkeypatch):
        monkeypatch.setenv("KEY", "process")
        assert _substitute_env_vars("$KEY", {"KEY": "explicit"}) == "explicit"


class TestServerAddress:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("CHATRELAY_HOST", raising=False)
        monkeypatch.delenv("CHATRELAY_PORT", raising=False)
        assert server_address({}) == ("127.0.0.1", 8000)

    def test_reads_gateway_settings(self, monkeypatch):
        monkeypatch.delenv("CHATRELAY_HOST", raising=False)
        monkeypatch.delenv("CHATRELAY_PORT", raising=False)
        config = {"gateway_settings": {"server": {"host": "0.0.0.0", "port": 9100}}}
        assert server_address(config) == ("0.0.0.0", 9100)

    def test_environment_overrides_config(self, monkeypatch):
        monkeypatch.setenv("CHATRELAY_HOST", "10.0.0.5")
        monkeypatch.setenv("CHATRELAY_PORT", "7000")
        config = {"gateway_settings": {"server": {"host": "0.0.0.0", "port": 9100}}}
        assert server_address(config) == ("10.0.0.5", 7000)

    def test_invalid_port_falls_back(self, monkeypatch):
        monkeypatch.delenv("CHATRELAY_HOST", raising=False)
        monkeypatch.setenv("CHATRELAY_PORT", "not-a-port")
        assert server_address({})[1] == 8000
