"""Shared configuration loader for the CKB live data source."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlparse

import yaml


class ConfigurationError(RuntimeError):
    """Raised when configuration is invalid."""


DEFAULT_CONFIG_PATH = Path.home() / ".ckb-offline.yaml"
DEFAULT_RPC_URL = "http://127.0.0.1:8114"
DEFAULT_TIMEOUT_SECONDS = 30.0
_CONFIG_PATH_OVERRIDE: Path | None = None


@dataclass
class RPCConfig:
    """Configuration container for CKB node RPC connection details."""

    url: str = DEFAULT_RPC_URL
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")


def set_default_config_path(path: str | Path | None) -> None:
    """Remember a user-supplied config path for future loads."""

    global _CONFIG_PATH_OVERRIDE
    _CONFIG_PATH_OVERRIDE = Path(path).expanduser() if path else None


def _load_config_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigurationError(f"Config file not found: {path}")
        return {}

    try:
        loaded = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - delegated to PyYAML
        raise ConfigurationError(f"Invalid YAML in config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Expected {path} to contain a YAML object with an 'rpc' section")
    return loaded


def _coerce_timeout(raw: Any, *, source: str) -> float | None:
    if raw is None:
        return None
    try:
        timeout = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid timeout in {source}: {raw}") from exc
    if timeout <= 0:
        raise ConfigurationError(f"Timeout in {source} must be positive: {raw}")
    return timeout


def _validate_url(raw: Any, *, source: str) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise ConfigurationError(f"Invalid RPC URL in {source}: {raw!r}")
    parsed = urlparse(raw)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.hostname:
        raise ConfigurationError(f"Invalid RPC URL in {source}: {raw}")
    return raw


def _first_value(*values: Any, default: Any = None) -> Any:
    for value in values:
        if value is not None:
            return value
    return default


def load_rpc_config(
    *,
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> RPCConfig:
    """Load RPC configuration from overrides, environment variables and YAML."""

    env_map = os.environ if env is None else env
    explicit_path = config_path is not None or _CONFIG_PATH_OVERRIDE is not None
    path = (
        Path(config_path).expanduser()
        if config_path is not None
        else _CONFIG_PATH_OVERRIDE or DEFAULT_CONFIG_PATH
    )

    file_config = _load_config_file(path, required=explicit_path)
    rpc_section = file_config.get("rpc", {}) if isinstance(file_config, dict) else {}
    if rpc_section and not isinstance(rpc_section, dict):
        raise ConfigurationError(f"Expected 'rpc' to be a mapping in {path}")

    override_map = dict(overrides or {})

    env_url = env_map.get("CKB_RPC_URL") or env_map.get("CKB_OFFLINE_RPC_URL")
    env_timeout = env_map.get("CKB_RPC_TIMEOUT") or env_map.get("CKB_OFFLINE_RPC_TIMEOUT")

    resolved_url = _first_value(
        _validate_url(override_map.get("url"), source="overrides"),
        _validate_url(env_url, source="environment"),
        _validate_url(rpc_section.get("url"), source=f"{path} rpc.url"),
        DEFAULT_RPC_URL,
    )
    resolved_timeout = _first_value(
        _coerce_timeout(override_map.get("timeout"), source="overrides"),
        _coerce_timeout(env_timeout, source="environment"),
        _coerce_timeout(rpc_section.get("timeout"), source=f"{path} rpc.timeout"),
        DEFAULT_TIMEOUT_SECONDS,
    )

    return RPCConfig(url=resolved_url, timeout=resolved_timeout)
