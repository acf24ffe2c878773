"""
Bridge configuration.

Values are layered, later sources win:
    defaults -> YAML file -> BRIDGE_* environment variables -> explicit overrides

Example bridge.yaml:

    host: 127.0.0.1
    port: 13000
    path: /ws
    http_origin: http://127.0.0.1:13000
    reconnect_interval: 5
    bootstrap_identity: true
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from shared.log import get_logger

logger = get_logger(__name__)


class ConfigError(Exception):
    """Raised when a configuration value is missing or has the wrong type."""
    pass


# env var -> field name
_ENV_FIELDS: Dict[str, str] = {
    "BRIDGE_HOST": "host",
    "BRIDGE_PORT": "port",
    "BRIDGE_PATH": "path",
    "BRIDGE_HTTP_ORIGIN": "http_origin",
    "BRIDGE_RECONNECT_INTERVAL": "reconnect_interval",
    "BRIDGE_OPEN_TIMEOUT": "open_timeout",
    "BRIDGE_BOOTSTRAP_IDENTITY": "bootstrap_identity",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass
class BridgeConfig:
    host: str = "127.0.0.1"
    port: int = 13000
    path: str = "/ws"
    http_origin: Optional[str] = None   # defaults to http://host:port
    reconnect_interval: float = 5.0     # seconds between reconnect attempts
    open_timeout: float = 10.0
    close_timeout: float = 2.0
    ping_interval: Optional[float] = 15.0
    ping_timeout: Optional[float] = 45.0
    max_message_size: int = 2 ** 20
    bootstrap_identity: bool = True

    def __post_init__(self) -> None:
        self.validate()

    @property
    def ws_url(self) -> str:
        path = self.path if self.path.startswith("/") else f"/{self.path}"
        return f"ws://{self.host}:{self.port}{path}"

    @property
    def http_url(self) -> str:
        origin = self.http_origin or f"http://{self.host}:{self.port}"
        return origin.rstrip("/") + "/"

    def validate(self) -> None:
        if not self.host:
            raise ConfigError("'host' must not be empty")
        if not 0 < self.port <= 65535:
            raise ConfigError(f"'port' out of range: {self.port}")
        if self.reconnect_interval <= 0:
            raise ConfigError("'reconnect_interval' must be positive")
        if self.open_timeout <= 0:
            raise ConfigError("'open_timeout' must be positive")
        if self.max_message_size <= 0:
            raise ConfigError("'max_message_size' must be positive")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'BridgeConfig':
        """Build a config from a mapping, coercing scalar strings"""
        known = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(known)
        if unknown:
            raise ConfigError(f"Unknown config keys: {sorted(unknown)}")
        values = {name: _coerce(name, value) for name, value in data.items()}
        return cls(**values)

    @classmethod
    def load(cls, path: Optional[Path] = None,
             environ: Optional[Mapping[str, str]] = None,
             **overrides: Any) -> 'BridgeConfig':
        """
        Resolve the effective config.

        Args:
            path: Optional YAML file; missing file is an error, None skips it
            environ: Environment mapping (os.environ when None)
            **overrides: Explicit values, None entries are ignored
        """
        data: Dict[str, Any] = {}
        if path is not None:
            data.update(_read_yaml(Path(path)))

        env = os.environ if environ is None else environ
        for var, name in _ENV_FIELDS.items():
            if env.get(var):
                data[name] = env[var]

        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_dict(data)

    def with_overrides(self, **overrides: Any) -> 'BridgeConfig':
        values = {k: _coerce(k, v) for k, v in overrides.items() if v is not None}
        return replace(self, **values)


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Error reading {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    logger.info(f"Loaded bridge config from {path}")
    return data


def _coerce(name: str, value: Any) -> Any:
    if name in ("port", "max_message_size"):
        return _as_int(name, value)
    if name in ("reconnect_interval", "open_timeout", "close_timeout"):
        return _as_float(name, value)
    if name in ("ping_interval", "ping_timeout"):
        return None if value is None or value == "" else _as_float(name, value)
    if name == "bootstrap_identity":
        return _as_bool(name, value)
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"'{name}' must be a string")
    return value


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"'{name}' must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{name}' must be an integer, got {value!r}") from e


def _as_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"'{name}' must be a number")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{name}' must be a number, got {value!r}") from e


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in _TRUE | _FALSE:
        return value.lower() in _TRUE
    raise ConfigError(f"'{name}' must be a boolean, got {value!r}")
