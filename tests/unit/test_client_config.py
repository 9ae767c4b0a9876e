"""
Unit tests for client_config.py - defaults, YAML file and environment.
"""

import pytest

from client_config import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SOCKET_PATH,
    ConfigError,
    load_config,
)


class TestLoadConfig:
    """Tests for load_config precedence."""

    def test_defaults(self):
        config = load_config()
        assert config.socket_path == DEFAULT_SOCKET_PATH
        assert config.connect_timeout == DEFAULT_CONNECT_TIMEOUT
        assert config.request_timeout == DEFAULT_REQUEST_TIMEOUT

    def test_yaml_file(self, temp_dir, monkeypatch):
        config_file = temp_dir / "client.yaml"
        config_file.write_text(
            "socket_path: /run/ue.sock\nconnect_timeout: 2\nrequest_timeout: 30\n"
        )
        monkeypatch.setenv("UPDATE_ENGINE_CLIENT_CONFIG", str(config_file))

        config = load_config()
        assert config.socket_path == "/run/ue.sock"
        assert config.connect_timeout == 2.0
        assert config.request_timeout == 30.0

    def test_empty_yaml_file(self, temp_dir, monkeypatch):
        config_file = temp_dir / "client.yaml"
        config_file.write_text("")
        monkeypatch.setenv("UPDATE_ENGINE_CLIENT_CONFIG", str(config_file))

        assert load_config().socket_path == DEFAULT_SOCKET_PATH

    def test_env_overrides_file(self, temp_dir, monkeypatch):
        config_file = temp_dir / "client.yaml"
        config_file.write_text("socket_path: /run/from-file.sock\n")
        monkeypatch.setenv("UPDATE_ENGINE_CLIENT_CONFIG", str(config_file))
        monkeypatch.setenv("UPDATE_ENGINE_SOCKET", "/run/from-env.sock")
        monkeypatch.setenv("UPDATE_ENGINE_REQUEST_TIMEOUT", "1.5")

        config = load_config()
        assert config.socket_path == "/run/from-env.sock"
        assert config.request_timeout == 1.5

    def test_flag_overrides_env(self, monkeypatch):
        monkeypatch.setenv("UPDATE_ENGINE_SOCKET", "/run/from-env.sock")
        assert load_config("/run/from-flag.sock").socket_path == "/run/from-flag.sock"

    def test_malformed_yaml(self, temp_dir, monkeypatch):
        config_file = temp_dir / "client.yaml"
        config_file.write_text("socket_path: [unclosed\n")
        monkeypatch.setenv("UPDATE_ENGINE_CLIENT_CONFIG", str(config_file))

        with pytest.raises(ConfigError):
            load_config()

    def test_yaml_not_a_mapping(self, temp_dir, monkeypatch):
        config_file = temp_dir / "client.yaml"
        config_file.write_text("- a\n- b\n")
        monkeypatch.setenv("UPDATE_ENGINE_CLIENT_CONFIG", str(config_file))

        with pytest.raises(ConfigError, match="mapping"):
            load_config()

    @pytest.mark.parametrize("value", ["abc", "0", "-3"])
    def test_invalid_timeout(self, monkeypatch, value):
        monkeypatch.setenv("UPDATE_ENGINE_CONNECT_TIMEOUT", value)
        with pytest.raises(ConfigError):
            load_config()
