from __future__ import annotations
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from deceptchat.shared.log import get_logger

logger = get_logger(__name__)

DEFAULT_SERVER_URL = "ws://localhost:8080/ws"

# env var -> config field
_ENV_OVERRIDES: Dict[str, str] = {
    "DECEPTCHAT_SERVER": "server_url",
    "DECEPTCHAT_RECONNECT_DELAY": "reconnect_delay",
    "DECEPTCHAT_MAX_RECONNECTS": "max_reconnect_attempts",
}


@dataclass(frozen=True)
class ClientConfig:
    server_url: str = DEFAULT_SERVER_URL
    reconnect_delay: float = 3.0
    max_reconnect_attempts: int = 5
    ping_interval: Optional[float] = 15.0
    ping_timeout: Optional[float] = 45.0
    username_prefix: str = "Player"

    @classmethod
    def load(cls, path: Optional[Path] = None, env: Optional[Dict[str, str]] = None) -> ClientConfig:
        """
        Build a config from defaults, then a YAML file, then environment overrides.

        The file is `path` if given, else $DECEPTCHAT_CONFIG if set. A missing
        explicit file is an error; no file at all is fine.
        """
        env = os.environ if env is None else env
        config = cls()

        if path is None and env.get("DECEPTCHAT_CONFIG"):
            path = Path(env["DECEPTCHAT_CONFIG"])
        if path is not None:
            config = config.with_values(_read_yaml(path))

        overrides = {field: env[name] for name, field in _ENV_OVERRIDES.items() if env.get(name)}
        if overrides:
            logger.debug(f"Applying environment overrides: {sorted(overrides)}")
            config = config.with_values(overrides)

        config.validate()
        return config

    def with_values(self, values: Dict[str, Any]) -> ClientConfig:
        """Return a copy with `values` coerced to each field's type."""
        known = {f.name for f in fields(self)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")

        coerced: Dict[str, Any] = {}
        for key, value in values.items():
            try:
                coerced[key] = _coerce(key, value)
            except (TypeError, ValueError) as e:
                raise ValueError(f"Invalid value for '{key}': {value!r}") from e
        return replace(self, **coerced)

    def validate(self) -> None:
        if not self.server_url.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid value for 'server_url': {self.server_url!r} (expected ws:// or wss://)")
        if self.reconnect_delay < 0:
            raise ValueError(f"Invalid value for 'reconnect_delay': {self.reconnect_delay!r}")
        if self.max_reconnect_attempts < 0:
            raise ValueError(f"Invalid value for 'max_reconnect_attempts': {self.max_reconnect_attempts!r}")
        if not self.username_prefix:
            raise ValueError("Invalid value for 'username_prefix': must not be empty")
        if "|" in self.username_prefix:
            raise ValueError(f"Invalid value for 'username_prefix': {self.username_prefix!r} (must not contain '|')")


def _coerce(key: str, value: Any) -> Any:
    if key in ("server_url", "username_prefix"):
        return str(value)
    if key == "max_reconnect_attempts":
        return int(value)
    if key in ("ping_interval", "ping_timeout") and value is None:
        return None
    return float(value)


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ValueError(f"Config file not found: {path}")
    except yaml.YAMLError as e:
        raise ValueError(f"Error reading {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    logger.info(f"Loaded client config from {path}")
    return data
