#!/usr/bin/env python3
"""
Update engine client configuration.

Precedence (lowest to highest):
  defaults < YAML file < environment < command line

The YAML file is optional; its location can be changed with
UPDATE_ENGINE_CLIENT_CONFIG.

    socket_path: /var/run/update_engine.sock
    connect_timeout: 5
    request_timeout: 10
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = "/var/run/update_engine.sock"
DEFAULT_CONFIG_FILE = "/etc/update_engine_client.yaml"
DEFAULT_CONNECT_TIMEOUT = 5.0  # seconds
DEFAULT_REQUEST_TIMEOUT = 10.0  # seconds

ENV_CONFIG_FILE = "UPDATE_ENGINE_CLIENT_CONFIG"
ENV_SOCKET = "UPDATE_ENGINE_SOCKET"
ENV_CONNECT_TIMEOUT = "UPDATE_ENGINE_CONNECT_TIMEOUT"
ENV_REQUEST_TIMEOUT = "UPDATE_ENGINE_REQUEST_TIMEOUT"


class ConfigError(Exception):
    """Invalid client configuration"""
    pass


@dataclass
class ClientConfig:
    socket_path: str = DEFAULT_SOCKET_PATH
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _as_timeout(value: Any, source: str) -> float:
    try:
        timeout = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid timeout in {source}: {value!r}")
    if timeout <= 0:
        raise ConfigError(f"Timeout in {source} must be positive: {value!r}")
    return timeout


def load_config(socket_path: Optional[str] = None) -> ClientConfig:
    """Build the client configuration from file, environment and flags.

    Args:
        socket_path: Socket path given on the command line, if any

    Raises:
        ConfigError: If the config file or an environment value is malformed
    """
    config = ClientConfig()

    config_file = Path(os.environ.get(ENV_CONFIG_FILE, DEFAULT_CONFIG_FILE))
    if config_file.exists():
        data = _load_yaml(config_file)
        logger.debug(f"Loaded config from {config_file}")
        if "socket_path" in data:
            config.socket_path = str(data["socket_path"])
        if "connect_timeout" in data:
            config.connect_timeout = _as_timeout(data["connect_timeout"], str(config_file))
        if "request_timeout" in data:
            config.request_timeout = _as_timeout(data["request_timeout"], str(config_file))

    if os.environ.get(ENV_SOCKET):
        config.socket_path = os.environ[ENV_SOCKET]
    if os.environ.get(ENV_CONNECT_TIMEOUT):
        config.connect_timeout = _as_timeout(os.environ[ENV_CONNECT_TIMEOUT], ENV_CONNECT_TIMEOUT)
    if os.environ.get(ENV_REQUEST_TIMEOUT):
        config.request_timeout = _as_timeout(os.environ[ENV_REQUEST_TIMEOUT], ENV_REQUEST_TIMEOUT)

    if socket_path:
        config.socket_path = socket_path

    return config
