# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Rotation state storage.

Tracks per-model usage, cooldown and depletion in a single JSON file that is
shared by every agent in the process. Model quotas belong to the model, not
to the agent using it.
"""

import json
import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from filelock import FileLock, Timeout

from .config import get_lock_timeout
from .types import ResourceState, UsageStats
from .utils.timestamps import format_timestamp, parse_timestamp, utc_now

lib_logger = logging.getLogger("model_rotation")

Clock = Callable[[], datetime]
StateUpdater = Callable[[ResourceState], ResourceState]


class RotationStateStore:
    """
    Persists rotation state for all models.

    Features:
    - Lazy load on first access, cached for the life of the process
    - Atomic writes (write to temp, then rename) after every mutation
    - Read and write failures are logged, never raised
    - One lock per instance serializes read-modify-write updates
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        clock: Optional[Clock] = None,
        lock_timeout: Optional[float] = None,
    ):
        """
        Initialize storage.

        Args:
            file_path: Path to the rotation state JSON file
            clock: Returns the current aware UTC datetime (for tests)
            lock_timeout: Seconds to wait for the file lock before skipping a write
        """
        self.file_path = Path(file_path)
        self._clock = clock or utc_now
        self._lock_timeout = get_lock_timeout() if lock_timeout is None else lock_timeout

        self._states: Dict[str, ResourceState] = {}
        self._loaded = False
        self._lock = threading.RLock()

    @property
    def temp_path(self) -> Path:
        return self.file_path.with_name(self.file_path.name + ".tmp")

    def now(self) -> datetime:
        return self._clock()

    # =========================================================================
    # READS
    # =========================================================================

    def get(self, resource: str) -> Optional[ResourceState]:
        """Current state of a model, or None if it has never been tracked."""
        with self._lock:
            self._ensure_loaded()
            return self._states.get(resource)

    def list_resources(self) -> List[str]:
        with self._lock:
            self._ensure_loaded()
            return list(self._states)

    def snapshot(self) -> Dict[str, ResourceState]:
        """Copy of the whole rotation state."""
        with self._lock:
            self._ensure_loaded()
            return dict(self._states)

    def is_in_cooldown(self, resource: str) -> bool:
        """
        True while a model's cooldown is still running.

        An elapsed cooldown is reported as over but is left flagged in storage.
        """
        state = self.get(resource)
        if state is None or not state.usage.in_cooldown:
            return False
        until = state.usage.cooldown_until
        return until is not None and self.now() < until

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def update(self, resource: str, updater: StateUpdater) -> None:
        """
        Apply ``updater`` to a model's state and persist the whole store.

        Untracked models start from a zero record.
        """
        with self._lock:
            self._ensure_loaded()
            current = self._states.get(resource) or ResourceState.fresh(self.now())
            self._states[resource] = updater(current)
            self._save()

    def increment_usage(self, resource: str, tokens_delta: Optional[int] = None) -> None:
        now = self.now()

        def _increment(current: ResourceState) -> ResourceState:
            usage = current.usage
            token_count = usage.token_count
            if tokens_delta is not None:
                token_count = (token_count or 0) + tokens_delta
            return replace(
                current,
                usage=replace(
                    usage,
                    call_count=usage.call_count + 1,
                    token_count=token_count,
                    last_used_at=now,
                ),
            )

        self.update(resource, _increment)

    def mark_depleted(self, resource: str, cooldown_seconds: float) -> None:
        now = self.now()
        cooldown_until = now + timedelta(seconds=cooldown_seconds)

        def _deplete(current: ResourceState) -> ResourceState:
            return ResourceState(
                usage=replace(
                    current.usage,
                    last_used_at=now,
                    in_cooldown=True,
                    cooldown_until=cooldown_until,
                ),
                depleted=True,
            )

        self.update(resource, _deplete)
        lib_logger.info(
            f"Model '{resource}' depleted, cooling down until {format_timestamp(cooldown_until)}"
        )

    def mark_available(self, resource: str) -> None:
        """Clear depletion and cooldown. Usage counters are left as they are."""

        def _release(current: ResourceState) -> ResourceState:
            return ResourceState(
                usage=replace(current.usage, in_cooldown=False, cooldown_until=None),
                depleted=False,
            )

        self.update(resource, _release)

    def reset_usage(self, resource: str) -> None:
        """
        Zero the call count, drop the token count and clear depletion and cooldown.

        Leaves the model as if freshly reactivated.
        """

        def _reset(current: ResourceState) -> ResourceState:
            return ResourceState(
                usage=replace(
                    current.usage,
                    call_count=0,
                    token_count=None,
                    in_cooldown=False,
                    cooldown_until=None,
                ),
                depleted=False,
            )

        self.update(resource, _reset)

    def prune_stale(self, max_age: timedelta) -> int:
        """
        Remove tracked models that were never used and are older than ``max_age``.

        Models with any recorded call or a cooldown flag are always kept.

        Returns:
            Number of entries removed
        """
        with self._lock:
            self._ensure_loaded()
            cutoff = self.now() - max_age
            stale = [
                resource
                for resource, state in self._states.items()
                if state.usage.last_used_at < cutoff
                and not state.usage.in_cooldown
                and state.usage.call_count == 0
            ]
            for resource in stale:
                del self._states[resource]

            if stale:
                lib_logger.debug(f"Pruned {len(stale)} stale models: {', '.join(stale)}")
                self._save()
            return len(stale)

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._states = self._load()
            self._loaded = True

    def _load(self) -> Dict[str, ResourceState]:
        if not self.file_path.exists():
            lib_logger.info(f"No rotation state found at {self.file_path}, starting fresh")
            return {}

        try:
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            lib_logger.warning(f"Rotation state file {self.file_path} is malformed: {e}")
            return {}
        except OSError as e:
            lib_logger.error(f"Failed to read rotation state: {e}")
            return {}

        if not isinstance(data, dict):
            lib_logger.warning(
                f"Rotation state file {self.file_path} must contain an object, "
                f"got {type(data).__name__}"
            )
            return {}

        states = {}
        for resource, entry in data.items():
            state = self._parse_resource_state(resource, entry)
            if state is not None:
                states[resource] = state

        lib_logger.debug(f"Loaded rotation state for {len(states)} models from {self.file_path}")
        return states

    def _save(self) -> None:
        """Write the whole store atomically. Failures are logged and swallowed."""
        data = {
            resource: self._serialize_resource_state(state)
            for resource, state in self._states.items()
        }
        content = json.dumps(data, indent=2) + "\n"
        temp_path = self.temp_path

        try:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            with FileLock(f"{self.file_path}.lock", timeout=self._lock_timeout):
                with open(temp_path, "w", encoding="utf-8") as f:
                    f.write(content)
                temp_path.replace(self.file_path)
        except Timeout:
            lib_logger.warning(
                f"Timed out waiting for lock on {self.file_path}, rotation state not saved"
            )
        except OSError as e:
            lib_logger.error(f"Failed to save rotation state: {e}")
            self._remove_temp_file()

    def _remove_temp_file(self) -> None:
        try:
            self.temp_path.unlink(missing_ok=True)
        except OSError as e:
            lib_logger.debug(f"Could not remove temp state file {self.temp_path}: {e}")

    def _parse_resource_state(self, resource: str, data: Any) -> Optional[ResourceState]:
        """Parse one model's state from storage data."""
        try:
            usage = data["usage"]
            last_used_at = parse_timestamp(usage.get("lastUsedAt")) or self.now()
            token_count = usage.get("tokenCount")
            return ResourceState(
                usage=UsageStats(
                    call_count=int(usage.get("callCount", 0)),
                    last_used_at=last_used_at,
                    in_cooldown=bool(usage.get("inCooldown", False)),
                    cooldown_until=parse_timestamp(usage.get("cooldownUntil")),
                    token_count=None if token_count is None else int(token_count),
                ),
                depleted=bool(data.get("depleted", False)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            lib_logger.warning(f"Failed to parse rotation state for '{resource}': {e}")
            return None

    def _serialize_resource_state(self, state: ResourceState) -> Dict[str, Any]:
        """Serialize one model's state for storage."""
        usage: Dict[str, Any] = {
            "callCount": state.usage.call_count,
            "lastUsedAt": format_timestamp(state.usage.last_used_at),
            "inCooldown": state.usage.in_cooldown,
            "cooldownUntil": (
                format_timestamp(state.usage.cooldown_until)
                if state.usage.cooldown_until is not None
                else None
            ),
        }
        if state.usage.token_count is not None:
            usage["tokenCount"] = state.usage.token_count
        return {"usage": usage, "depleted": state.depleted}


# =============================================================================
# SHARED STORES
# =============================================================================

_shared_stores: Dict[Path, RotationStateStore] = {}
_shared_lock = threading.Lock()


def get_shared_store(file_path: Union[str, Path]) -> RotationStateStore:
    """
    Get or create the process-wide store for a storage location.

    Every engine using the same file receives the same instance.
    """
    key = Path(file_path).expanduser().resolve()
    with _shared_lock:
        store = _shared_stores.get(key)
        if store is None:
            store = RotationStateStore(key)
            _shared_stores[key] = store
        return store
