# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Rotation configuration.

Holds the per-agent pool configuration, the loader for the agents config
file, and the environment lookups for storage locations.
"""

import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .constants import (
    AGENTS_CONFIG_FILENAME,
    APP_DIR_NAME,
    DEFAULT_COOLDOWN_SECONDS,
    DEFAULT_LIMIT_KIND,
    DEFAULT_LIMIT_VALUE,
    DEFAULT_LOCK_TIMEOUT,
    ENV_CONFIG_DIR,
    ENV_LOCK_TIMEOUT,
    ENV_LOG_DIR,
    STATE_FILENAME,
)
from .types import LimitKind

lib_logger = logging.getLogger("model_rotation")


class RotationConfigError(ValueError):
    pass


# =============================================================================
# POOL CONFIGURATION
# =============================================================================


@dataclass(frozen=True)
class ResourcePoolConfig:
    """
    Rotation configuration for a single agent.

    Immutable once built; an engine keeps the instance it was created with.
    """

    enabled: bool = False
    limit_kind: LimitKind = LimitKind(DEFAULT_LIMIT_KIND)
    limit_value: int = DEFAULT_LIMIT_VALUE
    cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS

    def __post_init__(self):
        if not isinstance(self.limit_kind, LimitKind):
            try:
                object.__setattr__(self, "limit_kind", LimitKind(self.limit_kind))
            except ValueError:
                raise RotationConfigError(
                    f"limit_kind must be 'calls' or 'tokens', got {self.limit_kind!r}"
                ) from None
        if isinstance(self.limit_value, bool) or not isinstance(self.limit_value, int):
            raise RotationConfigError(
                f"limit_value must be an integer, got {type(self.limit_value).__name__}"
            )
        if self.limit_value <= 0:
            raise RotationConfigError(
                f"limit_value must be greater than 0, got {self.limit_value}"
            )
        if self.cooldown_seconds < 0:
            raise RotationConfigError(
                f"cooldown_seconds must not be negative, got {self.cooldown_seconds}"
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResourcePoolConfig":
        """
        Create from a dictionary config.

        Accepts camelCase keys (``limitType``, ``limitValue``, ``cooldownMs``)
        as well as snake_case ones. Invalid values are logged and replaced by
        the defaults.
        """
        if not isinstance(data, Mapping):
            lib_logger.warning(
                f"Rotation config must be an object, got {type(data).__name__}"
            )
            return cls()

        enabled = bool(data.get("enabled", False))

        raw_kind = data.get("limitType", data.get("limit_kind", DEFAULT_LIMIT_KIND))
        try:
            limit_kind = LimitKind(str(raw_kind).lower())
        except ValueError:
            lib_logger.warning(
                f"Unknown rotation limitType {raw_kind!r}, using '{DEFAULT_LIMIT_KIND}'"
            )
            limit_kind = LimitKind(DEFAULT_LIMIT_KIND)

        limit_value = data.get("limitValue", data.get("limit_value", DEFAULT_LIMIT_VALUE))
        if isinstance(limit_value, bool) or not isinstance(limit_value, int) or limit_value <= 0:
            lib_logger.warning(
                f"Rotation limitValue must be a positive integer, got {limit_value!r}"
            )
            limit_value = DEFAULT_LIMIT_VALUE

        cooldown_seconds = _read_cooldown_seconds(data)

        return cls(
            enabled=enabled,
            limit_kind=limit_kind,
            limit_value=limit_value,
            cooldown_seconds=cooldown_seconds,
        )

    def describe(self) -> str:
        """Short human-readable form, e.g. ``calls=100, cooldown=3600s``."""
        return f"{self.limit_kind.value}={self.limit_value}, cooldown={self.cooldown_seconds:g}s"


def _read_cooldown_seconds(data: Mapping[str, Any]) -> float:
    if "cooldownMs" in data or "cooldown_ms" in data:
        raw = data.get("cooldownMs", data.get("cooldown_ms"))
        scale = 1000.0
    elif "cooldown_seconds" in data:
        raw = data["cooldown_seconds"]
        scale = 1.0
    else:
        return DEFAULT_COOLDOWN_SECONDS

    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw < 0:
        lib_logger.warning(f"Rotation cooldown must be a non-negative number, got {raw!r}")
        return DEFAULT_COOLDOWN_SECONDS
    return raw / scale


# =============================================================================
# AGENT POOLS
# =============================================================================


@dataclass
class AgentPool:
    """An agent's ordered model pool and its rotation config."""

    name: str
    models: List[str] = field(default_factory=list)
    config: ResourcePoolConfig = field(default_factory=ResourcePoolConfig)

    @property
    def rotation_enabled(self) -> bool:
        return self.config.enabled and len(self.models) > 1


def normalize_models(model: Union[str, List[Any], None]) -> List[str]:
    """Turn a ``model`` config value into an ordered list of model ids."""
    if not model:
        return []
    if isinstance(model, str):
        return [model]
    if not isinstance(model, list):
        lib_logger.warning(f"model must be a string or a list, got {type(model).__name__}")
        return []

    models = []
    for entry in model:
        if not isinstance(entry, str) or not entry:
            lib_logger.warning(f"Model entry must be a non-empty string, got {entry!r}")
            continue
        models.append(entry)
    return models


def load_agent_pools(config: Mapping[str, Any]) -> Dict[str, AgentPool]:
    """
    Build agent pools from an agents config object.

    Expected format::

        {
            "agents": {
                "oracle": {
                    "model": ["anthropic/claude-opus-4-5", "openai/gpt-5.2"],
                    "rotation": {"enabled": true, "limitType": "calls",
                                 "limitValue": 50, "cooldownMs": 120000}
                }
            }
        }

    Agents without any model are skipped.
    """
    pools: Dict[str, AgentPool] = {}
    agents = config.get("agents") if isinstance(config, Mapping) else None
    if not agents:
        return pools
    if not isinstance(agents, Mapping):
        lib_logger.warning(f"'agents' must be an object, got {type(agents).__name__}")
        return pools

    for agent_name, agent_config in agents.items():
        if not isinstance(agent_config, Mapping):
            lib_logger.warning(f"Config for agent '{agent_name}' must be an object")
            continue

        models = normalize_models(agent_config.get("model"))
        if not models:
            lib_logger.warning(f"Agent '{agent_name}' has no models configured, skipping")
            continue

        rotation = agent_config.get("rotation")
        pool_config = (
            ResourcePoolConfig.from_dict(rotation)
            if rotation is not None
            else ResourcePoolConfig()
        )
        pools[agent_name] = AgentPool(name=agent_name, models=models, config=pool_config)

    return pools


def load_agent_pools_from_file(path: Union[str, Path]) -> Dict[str, AgentPool]:
    """
    Load agent pools from a JSON file.

    Raises FileNotFoundError or json.JSONDecodeError for a missing or
    unparseable file.
    """
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    pools = load_agent_pools(data)
    lib_logger.info(f"Loaded {len(pools)} agent pools from {path}")
    return pools


# =============================================================================
# ENVIRONMENT
# =============================================================================


def parse_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        lib_logger.warning(f"Invalid value for {name}: {raw!r}, using {default}")
        return default


def resolve_config_dir() -> Path:
    """
    Directory holding the agents config and the rotation state.

    Lookup order: ``MODEL_ROTATION_CONFIG_DIR``, ``$XDG_CONFIG_HOME``,
    ``%APPDATA%`` on Windows, then ``~/.config``.
    """
    explicit = (os.getenv(ENV_CONFIG_DIR) or "").strip()
    if explicit:
        return Path(explicit).expanduser()

    xdg = (os.getenv("XDG_CONFIG_HOME") or "").strip()
    if xdg:
        return Path(xdg).expanduser() / APP_DIR_NAME

    if sys.platform.startswith("win"):
        appdata = (os.getenv("APPDATA") or "").strip()
        if appdata:
            return Path(appdata) / APP_DIR_NAME

    return Path.home() / ".config" / APP_DIR_NAME


def default_state_path(config_dir: Optional[Path] = None) -> Path:
    return (config_dir or resolve_config_dir()) / STATE_FILENAME


def default_agents_config_path(config_dir: Optional[Path] = None) -> Path:
    return (config_dir or resolve_config_dir()) / AGENTS_CONFIG_FILENAME


def get_lock_timeout() -> float:
    return parse_float_env(ENV_LOCK_TIMEOUT, DEFAULT_LOCK_TIMEOUT)


def get_log_dir() -> Optional[Path]:
    raw = (os.getenv(ENV_LOG_DIR) or "").strip()
    return Path(raw).expanduser() if raw else None
