# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Rotation engine.

Decides when an agent should move to another model in its pool and which
one. Rotation happens proactively when the current model crosses its usage
threshold and reactively when a provider error has been classified as
rotation-worthy. Pools are walked round-robin from the current model.
"""

import logging
from datetime import timedelta
from typing import List, Optional, Sequence

from .config import ResourcePoolConfig
from .constants import STATE_MAX_AGE_DAYS
from .state_store import RotationStateStore
from .types import LimitKind, RotationResult

lib_logger = logging.getLogger("model_rotation")

ERROR_ROTATION_REASON = "API quota/rate limit error"


class RotationEngine:
    """
    Per-agent rotation logic over a shared state store.

    Several engines (one per agent) may share one store; a model depleted by
    one agent is skipped by all of them.
    """

    def __init__(self, caller: str, config: ResourcePoolConfig, store: RotationStateStore):
        """
        Args:
            caller: Agent name, used in log messages
            config: The agent's rotation configuration
            store: Shared rotation state store
        """
        self.caller = caller
        self.config = config
        self._store = store

    @property
    def store(self) -> RotationStateStore:
        return self._store

    # =========================================================================
    # ROTATION ENTRY POINTS
    # =========================================================================

    def should_rotate_proactively(
        self, current_resource: str, pool: Sequence[str]
    ) -> RotationResult:
        """Rotate away from ``current_resource`` if it has reached its usage limit."""
        if not self._can_rotate(pool):
            return RotationResult.unchanged()

        state = self._store.get(current_resource)
        if state is None:
            return RotationResult.unchanged()

        usage = state.usage
        limit = self.config.limit_value
        if self.config.limit_kind is LimitKind.CALLS and usage.call_count >= limit:
            reason = f"Usage limit reached ({usage.call_count}/{limit} calls)"
            return self._rotate(current_resource, pool, reason)

        if (
            self.config.limit_kind is LimitKind.TOKENS
            and usage.token_count is not None
            and usage.token_count >= limit
        ):
            reason = f"Usage limit reached ({usage.token_count}/{limit} tokens)"
            return self._rotate(current_resource, pool, reason)

        return RotationResult.unchanged()

    def rotate_on_classified_error(
        self, current_resource: str, pool: Sequence[str]
    ) -> RotationResult:
        """
        Rotate away from ``current_resource`` after a rotation-worthy error.

        The caller must already have classified the error as triggering rotation.
        """
        if not self._can_rotate(pool):
            return RotationResult.unchanged()
        return self._rotate(current_resource, pool, ERROR_ROTATION_REASON)

    # =========================================================================
    # SELECTION
    # =========================================================================

    def next_available_resource(self, pool: Sequence[str]) -> Optional[str]:
        """
        Pick the first usable model in ``pool`` for the next call.

        A model whose cooldown has elapsed is reactivated on selection: its
        depletion and cooldown are cleared and its usage counters restart
        from zero.

        Returns:
            The selected model, or None if every model is depleted or cooling down
        """
        self._prune()

        for resource in pool:
            state = self._store.get(resource)
            if state is None:
                return resource

            usage = state.usage
            if usage.in_cooldown and (
                usage.cooldown_until is None or self._store.now() >= usage.cooldown_until
            ):
                self._store.reset_usage(resource)
                lib_logger.info(
                    f"[{self.caller}] Cooldown elapsed for '{resource}', reactivated with fresh counters"
                )
                return resource

            if not state.depleted and not self._store.is_in_cooldown(resource):
                return resource

        return None

    def is_fully_depleted(self, pool: Sequence[str]) -> bool:
        """True if every model in ``pool`` is tracked and depleted."""
        for resource in pool:
            state = self._store.get(resource)
            if state is None or not state.depleted:
                return False
        return True

    # =========================================================================
    # USAGE & HOUSEKEEPING
    # =========================================================================

    def record_usage(self, resource: str, tokens_used: Optional[int] = None) -> None:
        if self.config.enabled:
            self._store.increment_usage(resource, tokens_used)

    def reset_expired_cooldowns(self) -> None:
        """Release models flagged as cooling down without being depleted."""
        for resource in self._store.list_resources():
            state = self._store.get(resource)
            if state is not None and state.usage.in_cooldown and not state.depleted:
                self._store.mark_available(resource)

    # =========================================================================
    # PRIVATE METHODS
    # =========================================================================

    def _can_rotate(self, pool: Sequence[str]) -> bool:
        return self.config.enabled and len(pool) > 1

    def _prune(self) -> None:
        self._store.prune_stale(timedelta(days=STATE_MAX_AGE_DAYS))

    def _is_available(self, resource: str) -> bool:
        state = self._store.get(resource)
        if state is None:
            return True
        return not state.depleted and not self._store.is_in_cooldown(resource)

    def _find_next(self, current_resource: str, pool: Sequence[str]) -> Optional[str]:
        """Scan the pool round-robin, starting after ``current_resource``."""
        self._prune()

        members: List[str] = list(pool)
        try:
            start = members.index(current_resource) + 1
        except ValueError:
            start = 0

        for offset in range(len(members)):
            candidate = members[(start + offset) % len(members)]
            if candidate == current_resource:
                continue
            if self._is_available(candidate):
                return candidate
        return None

    def _rotate(
        self, current_resource: str, pool: Sequence[str], reason: str
    ) -> RotationResult:
        next_resource = self._find_next(current_resource, pool)

        if next_resource is None:
            for resource in pool:
                state = self._store.get(resource)
                if state is None or not state.depleted:
                    self._store.mark_depleted(resource, self.config.cooldown_seconds)
            lib_logger.warning(
                f"[{self.caller}] All models depleted ({reason}): {', '.join(pool)}"
            )
            return RotationResult(
                rotated=True, next_resource=None, reason=reason, all_depleted=True
            )

        self._store.mark_depleted(current_resource, self.config.cooldown_seconds)
        lib_logger.info(
            f"[{self.caller}] Rotating '{current_resource}' -> '{next_resource}' ({reason})"
        )
        return RotationResult(rotated=True, next_resource=next_resource, reason=reason)
