"""config/loader.py

Startup config loader for config/networks.yaml.

- Deterministic config hash (sha256 of file bytes) for logging.
- A missing file falls back to the built-in networks and default tunables.
- Environment variables are read once here; nothing re-reads them later.
"""

from __future__ import annotations

import dataclasses
import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from config.networks import NetworkRegistry, default_registry
from config.runtime_schema import DispatchConfig
from execution.errors import ConfigError

logger = logging.getLogger(__name__)

# Packaged with the config module so the CLI finds it from any working directory.
DEFAULT_CONFIG_PATH = str(Path(__file__).resolve().parent / "networks.yaml")

# Environment overrides for dispatch tunables: env var -> DispatchConfig field
ENV_OVERRIDES = {
    "CONFIRMATION_TIMEOUT_SEC": "confirmation_timeout_sec",
}


@dataclass(frozen=True)
class LoadedConfig:
    path: Optional[str]
    registry: NetworkRegistry
    dispatch: DispatchConfig
    config_hash: str  # sha256 hex, "" when built-in defaults are used


def _sha256_file(path: Path) -> str:
    b = path.read_bytes()
    return hashlib.sha256(b).hexdigest()


def _dispatch_from_raw(raw: Mapping[str, Any], env: Mapping[str, str]) -> DispatchConfig:
    known = {f.name for f in dataclasses.fields(DispatchConfig)}
    values: Dict[str, Any] = {}

    for key, value in raw.items():
        if key not in known:
            raise ConfigError(f"Unknown dispatch option: {key}")
        values[key] = value

    for env_key, field_name in ENV_OVERRIDES.items():
        if env.get(env_key):
            try:
                values[field_name] = float(env[env_key])
            except ValueError:
                raise ConfigError(f"{env_key} must be numeric, got {env[env_key]!r}") from None

    try:
        return DispatchConfig(**values)
    except ValueError as e:
        raise ConfigError(f"Invalid dispatch config: {e}") from e


def load_app_config(
    path: str = DEFAULT_CONFIG_PATH,
    environ: Optional[Mapping[str, str]] = None,
) -> LoadedConfig:
    """Load and validate the network/dispatch configuration.

    Raises:
        ConfigError: If the file exists but is malformed.
    """
    env = os.environ if environ is None else environ
    p = Path(path)

    if not p.exists():
        logger.info(f"[config] {p} not found, using built-in networks")
        return LoadedConfig(
            path=None,
            registry=default_registry(env),
            dispatch=_dispatch_from_raw({}, env),
            config_hash="",
        )

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {p}: {e}") from e

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"{p} must be a YAML mapping (dict at top-level)")

    networks = raw.get("networks")
    if networks is None:
        registry = default_registry(env)
    elif isinstance(networks, dict):
        registry = NetworkRegistry.from_mapping(networks, environ=env)
    else:
        raise ConfigError("networks must be a mapping")

    dispatch_raw = raw.get("dispatch") or {}
    if not isinstance(dispatch_raw, dict):
        raise ConfigError("dispatch must be a mapping")

    loaded = LoadedConfig(
        path=str(p),
        registry=registry,
        dispatch=_dispatch_from_raw(dispatch_raw, env),
        config_hash=_sha256_file(p),
    )
    logger.info(f"[config] Loaded {p} (sha256={loaded.config_hash[:12]})")
    return loaded
