# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Constants and default values for model rotation.

Tunable defaults live here so that the classifier vocabulary and the
rotation thresholds can be changed without touching the engine.
"""

# =============================================================================
# ROTATION DEFAULTS
# =============================================================================

# Default cooldown after a model is depleted (1 hour)
DEFAULT_COOLDOWN_SECONDS = 3600.0

# Default usage threshold before proactive rotation
DEFAULT_LIMIT_VALUE = 100

# Default limit kind ("calls" or "tokens")
DEFAULT_LIMIT_KIND = "calls"

# Tracked-but-never-used models older than this are pruned
STATE_MAX_AGE_DAYS = 30

# Seconds to wait for the state file lock before skipping a write
DEFAULT_LOCK_TIMEOUT = 5.0

# =============================================================================
# FILES & ENVIRONMENT
# =============================================================================

APP_DIR_NAME = "model-rotation"
STATE_FILENAME = "model-rotation-state.json"
AGENTS_CONFIG_FILENAME = "model-rotation.json"

ENV_CONFIG_DIR = "MODEL_ROTATION_CONFIG_DIR"
ENV_LOCK_TIMEOUT = "MODEL_ROTATION_LOCK_TIMEOUT"
ENV_LOG_DIR = "MODEL_ROTATION_LOG_DIR"

# =============================================================================
# ERROR CLASSIFICATION VOCABULARY
# =============================================================================

# Case-insensitive substrings that mark an error message as rotation-worthy
ROTATION_ERROR_KEYWORDS = (
    "rate limit",
    "quota exceeded",
    "too many requests",
    "429",
    "rate_limited",
    "quota_exceeded",
    "resource_exhausted",
    "service_unavailable",
    "insufficient_quota",
    "overloaded",
    "rate_limit_error",
    "permission_denied",
    "maximum quota",
    "model not found",
    "modelnotfound",
    "providermodelnotfounderror",
    "not found",
    "invalid model",
    "does not exist",
)

# Message fragments / field markers used to pick the error kind
NOT_FOUND_MESSAGE_MARKERS = ("not found", "does not exist", "invalid model", "modelnotfound")
NOT_FOUND_NAME_MARKERS = ("modelnotfound",)
NOT_FOUND_TYPE_MARKERS = ("not_found",)
QUOTA_MESSAGE_MARKERS = ("quota", "insufficient", "exhausted")
QUOTA_CODE_MARKERS = ("quota", "insufficient")
QUOTA_TYPE_MARKERS = ("quota",)

# Nested error type/code markers that trigger rotation without keywords
ROTATION_TYPE_MARKERS = ("rate_limit", "quota")
ROTATION_CODE_MARKERS = ("rate_limit", "quota", "insufficient")

RESOURCE_EXHAUSTED_STATUS = "resource_exhausted"

# HTTP status codes that always trigger rotation; 529 is always a quota error
ROTATION_STATUS_CODES = (429, 529)
QUOTA_STATUS_CODES = (529,)

# Depth of nested error payloads followed (error -> data -> error)
MAX_NESTING_DEPTH = 3

# =============================================================================
# ORIGIN HINTS
# =============================================================================

# Origin value -> fragments found in a model name or free text
ORIGIN_NAME_HINTS = {
    "anthropic": ("anthropic", "claude"),
    "openai": ("openai", "gpt"),
    "google": ("google", "gemini"),
}

# Origin inference from nested error fields, checked in order.
# Each rule is (origin, field, match, value) where match is "contains" or "equals".
ORIGIN_FIELD_RULES = (
    ("openai", "code", "contains", "rate_limit"),
    ("openai", "code", "contains", "insufficient"),
    ("google", "status", "equals", "resource_exhausted"),
    ("anthropic", "type", "contains", "rate_limit"),
    ("anthropic", "type", "equals", "quota_exceeded"),
    ("anthropic", "type", "equals", "overloaded_error"),
)
