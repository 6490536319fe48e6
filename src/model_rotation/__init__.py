# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import logging

from .config import (
    AgentPool,
    ResourcePoolConfig,
    RotationConfigError,
    load_agent_pools,
    load_agent_pools_from_file,
)
from .engine import RotationEngine
from .error_classifier import ErrorClassifier, classify
from .hooks import RotationHooks, RotationNotice
from .state_store import RotationStateStore, get_shared_store
from .types import (
    ErrorKind,
    LimitKind,
    Origin,
    ParsedError,
    ResourceState,
    RotationResult,
    UsageStats,
)

logging.getLogger("model_rotation").addHandler(logging.NullHandler())

__all__ = [
    "AgentPool",
    "ResourcePoolConfig",
    "RotationConfigError",
    "load_agent_pools",
    "load_agent_pools_from_file",
    "RotationEngine",
    "ErrorClassifier",
    "classify",
    "RotationHooks",
    "RotationNotice",
    "RotationStateStore",
    "get_shared_store",
    # Types
    "ErrorKind",
    "LimitKind",
    "Origin",
    "ParsedError",
    "ResourceState",
    "RotationResult",
    "UsageStats",
]
