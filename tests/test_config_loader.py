"""Tests for the config loader module."""

import os
import tempfile
from pathlib import Path

import pytest
import yaml

from onemin_relay.config_loader import (
    _substitute_env_vars,
    get_section,
    get_server_address,
    load_config,
    resolve_env_path,
)
from onemin_relay.core.exceptions import ConfigurationError


def _write_config(directory: str, data, name: str = "config_test.yaml") -> str:
    path = Path(directory) / name
    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(data, fh)
    return str(path)


class TestLoadConfig:
    """Tests for loading configuration from YAML files."""

    def test_loads_simple_config(self):
        """Test loading a simple configuration."""
        config_data = {
            "backend": {
                "api_base": "http://test.local/api",
                "api_key": "test-key",
            }
        }

        with tempfile.TemporaryDirectory() as tmp:
            result = load_config(_write_config(tmp, config_data))
            assert result["backend"]["api_base"] == "http://test.local/api"

    def test_raises_error_for_missing_config(self):
        """Test that error is raised for missing config file."""
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_config("/nonexistent/path/config.yaml")

    def test_rejects_non_mapping_document(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = _write_config(tmp, ["not", "a", "mapping"])
            with pytest.raises(ConfigurationError, match="must contain a mapping"):
                load_config(path)

    def test_empty_file_is_empty_config(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config_empty.yaml"
            path.write_text("", encoding="utf-8")
            assert load_config(str(path)) == {}

    def test_substitutes_environment_variables(self):
        """Test that environment variables are substituted."""
        os.environ["TEST_ONEMIN_KEY"] = "my-secret-key"

        config_data = {"backend": {"api_key": "${TEST_ONEMIN_KEY}"}}

        with tempfile.TemporaryDirectory() as tmp:
            try:
                result = load_config(_write_config(tmp, config_data))
                assert result["backend"]["api_key"] == "my-secret-key"
            finally:
                del os.environ["TEST_ONEMIN_KEY"]

    def test_env_file_beside_config_wins(self):
        """Values from the matching .env file take priority over os.environ."""
        os.environ["TEST_ONEMIN_KEY"] = "from-environ"

        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / ".env_test").write_text(
                "TEST_ONEMIN_KEY=from-dotenv\n", encoding="utf-8"
            )
            path = _write_config(tmp, {"backend": {"api_key": "${TEST_ONEMIN_KEY}"}})
            try:
                result = load_config(path)
                assert result["backend"]["api_key"] == "from-dotenv"
                # The .env file does not leak into the process environment.
                assert os.environ["TEST_ONEMIN_KEY"] == "from-environ"
            finally:
                del os.environ["TEST_ONEMIN_KEY"]

    def test_substitution_can_be_disabled(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = _write_config(tmp, {"backend": {"api_key": "${WHATEVER}"}})
            result = load_config(path, substitute_env=False)
            assert result["backend"]["api_key"] == "${WHATEVER}"

    def test_default_config_file_loads(self):
        result = load_config("configs/config_default.yaml", substitute_env=False)
        assert result["backend"]["api_key"] == "${ONEMIN_API_KEY}"
        assert result["chunking"]["max_segment_size"] == 2000


class TestSubstituteEnvVars:
    """Tests for environment variable substitution."""

    def test_substitutes_in_nested_dict(self):
        os.environ["NESTED_VAR"] = "nested-value"
        try:
            result = _substitute_env_vars({"level1": {"level2": {"value": "${NESTED_VAR}"}}})
            assert result["level1"]["level2"]["value"] == "nested-value"
        finally:
            del os.environ["NESTED_VAR"]

    def test_substitutes_in_list(self):
        os.environ["LIST_VAR"] = "list-value"
        try:
            result = _substitute_env_vars({"items": ["${LIST_VAR}", "static"]})
            assert result["items"] == ["list-value", "static"]
        finally:
            del os.environ["LIST_VAR"]

    def test_simple_dollar_syntax(self):
        result = _substitute_env_vars("prefix-$SIMPLE", {"SIMPLE": "v"})
        assert result == "prefix-v"

    def test_preserves_non_string_values(self):
        data = {"number": 42, "boolean": True, "null": None}
        assert _substitute_env_vars(data) == data

    def test_missing_var_keeps_placeholder(self):
        os.environ.pop("MISSING_ONEMIN_VAR", None)
        assert _substitute_env_vars("${MISSING_ONEMIN_VAR}") == "${MISSING_ONEMIN_VAR}"


class TestResolveEnvPath:
    def test_env_file_follows_config_suffix(self):
        assert resolve_env_path(Path("/etc/relay/config_prod.yaml")) == Path(
            "/etc/relay/.env_prod"
        )

    def test_plain_env_file_otherwise(self):
        assert resolve_env_path(Path("/etc/relay/relay.yaml")) == Path("/etc/relay/.env")


class TestSections:
    def test_missing_section_is_empty(self):
        assert get_section({"backend": None}, "backend") == {}
        assert get_section({}, "chunking") == {}

    def test_non_mapping_section_raises(self):
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            get_section({"chunking": [1, 2]}, "chunking")


class TestServerAddress:
    def test_reads_config(self, monkeypatch):
        monkeypatch.delenv("ONEMIN_RELAY_HOST", raising=False)
        monkeypatch.delenv("ONEMIN_RELAY_PORT", raising=False)
        config = {"proxy_settings": {"server": {"host": "0.0.0.0", "port": 9000}}}
        assert get_server_address(config) == ("0.0.0.0", 9000)

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("ONEMIN_RELAY_HOST", "10.0.0.1")
        monkeypatch.setenv("ONEMIN_RELAY_PORT", "7000")
        assert get_server_address({}) == ("10.0.0.1", 7000)

    def test_invalid_port_falls_back(self, monkeypatch):
        monkeypatch.delenv("ONEMIN_RELAY_HOST", raising=False)
        monkeypatch.setenv("ONEMIN_RELAY_PORT", "not-a-port")
        assert get_server_address({}) == ("127.0.0.1", 8000)
