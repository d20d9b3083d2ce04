"""
User configuration for localcluster.

Values are read from ~/.config/localcluster/config.json and may be
overridden per key by LOCALCLUSTER_<KEY> environment variables
(upper-cased, dashes turned into underscores).
"""

from __future__ import annotations

import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_CPUS,
    DEFAULT_LIBVIRT_URI,
    DEFAULT_MEMORY,
)
from .exceptions import InvalidConfigError

logger = logging.getLogger(__name__)

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off", ""}

SKIP_PREFIX = "skip-"
WARN_PREFIX = "warn-"


class NetworkMode(str, Enum):
    """How the host talks to the VM."""
    DEFAULT = "default"
    VSOCK = "vsock"

    @classmethod
    def parse(cls, value: Any) -> "NetworkMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidConfigError(
                "network-mode", value, f"must be one of {[m.value for m in cls]}"
            ) from None


DEFAULTS: Dict[str, Any] = {
    "network-mode": NetworkMode.DEFAULT.value,
    "memory": DEFAULT_MEMORY,
    "cpus": DEFAULT_CPUS,
    "libvirt-uri": DEFAULT_LIBVIRT_URI,
}

_INT_KEYS = {"memory": 2048, "cpus": 1}


def env_var_name(key: str) -> str:
    """Environment variable that overrides a config key."""
    return f"{APP_NAME.upper()}_{key.upper().replace('-', '_')}"


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raw = str(value).strip().lower()
    if raw in TRUTHY:
        return True
    if raw in FALSY:
        return False
    raise InvalidConfigError(key, value, "must be a boolean")


def _validate(key: str, value: Any) -> Any:
    if key == "network-mode":
        return NetworkMode.parse(value).value
    if key in _INT_KEYS:
        try:
            number = int(value)
        except (TypeError, ValueError):
            raise InvalidConfigError(key, value, "must be an integer") from None
        if number < _INT_KEYS[key]:
            raise InvalidConfigError(key, value, f"must be >= {_INT_KEYS[key]}")
        return number
    if key.startswith(SKIP_PREFIX) or key.startswith(WARN_PREFIX):
        return _parse_bool(key, value)
    if key in DEFAULTS:
        return str(value)
    raise InvalidConfigError(key, value, "unknown configuration key")


class Config:
    """
    Layered configuration: environment, then config file, then defaults.

    Example:
        config = Config.load()
        if config.network_mode is NetworkMode.VSOCK:
            ...
        config.set("skip-check-ram", True)
        config.save()
    """

    def __init__(
        self,
        values: Optional[Mapping[str, Any]] = None,
        path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.path = path or CONFIG_FILE
        self._environ = os.environ if environ is None else environ
        self._values: Dict[str, Any] = {}
        for key, value in (values or {}).items():
            self._values[key] = _validate(key, value)

    @classmethod
    def load(
        cls,
        path: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Config":
        """
        Load configuration from disk.

        A missing file yields an empty configuration.

        Raises:
            InvalidConfigError: If the file is not a JSON object or holds invalid values
        """
        path = path or CONFIG_FILE
        values: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    values = json.load(f)
            except json.JSONDecodeError as e:
                raise InvalidConfigError(str(path), "<file>", f"invalid JSON: {e}") from e
            if not isinstance(values, dict):
                raise InvalidConfigError(str(path), "<file>", "must contain a JSON object")
            logger.debug(f"Loaded {len(values)} config value(s) from {path}")
        return cls(values, path=path, environ=environ)

    def save(self) -> None:
        """Persist file-backed values (environment overrides are not written)."""
        from utils.atomic_write import atomic_write_json

        atomic_write_json(self.path, self._values, mode=0o600)
        logger.debug(f"Saved configuration to {self.path}")

    def get(self, key: str) -> Any:
        env_value = self._environ.get(env_var_name(key))
        if env_value is not None:
            return _validate(key, env_value)
        if key in self._values:
            return self._values[key]
        if key.startswith(SKIP_PREFIX) or key.startswith(WARN_PREFIX):
            return False
        if key in DEFAULTS:
            return DEFAULTS[key]
        raise InvalidConfigError(key, None, "unknown configuration key")

    def set(self, key: str, value: Any) -> None:
        self._values[key] = _validate(key, value)

    def unset(self, key: str) -> None:
        self._values.pop(key, None)

    def as_dict(self) -> Dict[str, Any]:
        """Effective values for all known keys and every stored key."""
        keys = set(DEFAULTS) | set(self._values)
        return {key: self.get(key) for key in sorted(keys)}

    @property
    def network_mode(self) -> NetworkMode:
        return NetworkMode.parse(self.get("network-mode"))

    @property
    def memory(self) -> int:
        return self.get("memory")

    @property
    def cpus(self) -> int:
        return self.get("cpus")

    @property
    def libvirt_uri(self) -> str:
        return self.get("libvirt-uri")

    def is_check_skipped(self, config_key_suffix: str) -> bool:
        if not config_key_suffix:
            return False
        return self.get(SKIP_PREFIX + config_key_suffix)

    def is_check_warn_only(self, config_key_suffix: str) -> bool:
        if not config_key_suffix:
            return False
        return self.get(WARN_PREFIX + config_key_suffix)
