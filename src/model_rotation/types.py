# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Type definitions for model rotation.

This module contains the enums and dataclasses shared by the state store,
the rotation engine and the error classifier.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


# =============================================================================
# ENUMS
# =============================================================================


class LimitKind(str, Enum):
    """What a rotation threshold counts."""

    CALLS = "calls"  # API calls made
    TOKENS = "tokens"  # Tokens consumed


class ErrorKind(str, Enum):
    """Normalized error taxonomy."""

    RATE_LIMIT = "rate_limit"
    QUOTA = "quota"
    RESOURCE_NOT_FOUND = "model_not_found"
    OTHER = "other"


class Origin(str, Enum):
    """Upstream provider inferred from an error payload."""

    ANTHROPIC = "anthropic"
    OPENAI = "openai"
    GOOGLE = "google"
    UNKNOWN = "unknown"


# =============================================================================
# STATE TYPES
# =============================================================================


@dataclass(frozen=True)
class UsageStats:
    """
    Usage statistics for a single model.

    ``in_cooldown`` may stay True after ``cooldown_until`` has passed; expired
    cooldowns are reconciled when the model is next selected.
    """

    call_count: int
    last_used_at: datetime
    in_cooldown: bool = False
    cooldown_until: Optional[datetime] = None
    token_count: Optional[int] = None


@dataclass(frozen=True)
class ResourceState:
    """Per-model rotation state."""

    usage: UsageStats
    depleted: bool = False

    @classmethod
    def fresh(cls, now: datetime) -> "ResourceState":
        """Create the zero record used for a model seen for the first time."""
        return cls(usage=UsageStats(call_count=0, last_used_at=now))


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass(frozen=True)
class RotationResult:
    """Outcome of a rotation decision."""

    rotated: bool
    next_resource: Optional[str] = None
    reason: Optional[str] = None
    all_depleted: bool = False

    @classmethod
    def unchanged(cls) -> "RotationResult":
        """Create a no-rotation result."""
        return cls(rotated=False)


@dataclass(frozen=True)
class ParsedError:
    """Classification of an arbitrary error payload."""

    triggers_rotation: bool
    kind: ErrorKind
    origin: Origin
    message: str
