# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Host event hooks for model rotation.

Connects host message events to the rotation engines of the configured
agents: records usage, classifies errors, rotates, and describes the outcome
as a RotationNotice for the host to display.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .config import AgentPool, get_log_dir, load_agent_pools
from .engine import RotationEngine
from .error_classifier import ErrorClassifier
from .rotation_logger import log_rotation, setup_rotation_logger
from .state_store import RotationStateStore
from .types import ParsedError, RotationResult

lib_logger = logging.getLogger("model_rotation")

MESSAGE_UPDATED_EVENT = "message.updated"
NOTICE_TITLE = "Model Rotation"

# Number of message keys remembered for de-duplicating repeated events
SEEN_MESSAGES_LIMIT = 1024


@dataclass(frozen=True)
class RotationNotice:
    """A user-facing description of a rotation decision."""

    title: str
    message: str
    variant: str  # "info" or "error"


@dataclass
class AgentRotation:
    pool: AgentPool
    engine: RotationEngine


def _as_mapping(value: Any) -> Optional[Mapping[str, Any]]:
    return value if isinstance(value, Mapping) else None


def _non_empty_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def extract_tokens_used(properties: Mapping[str, Any], info: Mapping[str, Any]) -> Optional[int]:
    """
    Total tokens reported for a message: input + cache reads + output.

    Returns None when the event carries no token figures.
    """
    explicit = properties.get("tokensUsed")
    if isinstance(explicit, int) and not isinstance(explicit, bool):
        return explicit

    tokens = _as_mapping(info.get("tokens"))
    if tokens is None:
        return None

    cache = _as_mapping(tokens.get("cache")) or {}
    total = 0
    for value in (tokens.get("input"), cache.get("read"), tokens.get("output")):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            total += int(value)
    return total


class RotationHooks:
    """
    Rotation handling for every agent with rotation enabled.

    Usage is recorded once per assistant message even when the host sends
    several updates for it.
    """

    def __init__(
        self,
        agents: Dict[str, AgentRotation],
        classifier: Optional[ErrorClassifier] = None,
        decision_logger: Optional[logging.Logger] = None,
    ):
        self._agents = agents
        self._classifier = classifier or ErrorClassifier()
        self._decision_logger = decision_logger
        self._recorded: "OrderedDict[Tuple[Any, ...], None]" = OrderedDict()
        self._handled_errors: "OrderedDict[Tuple[Any, ...], None]" = OrderedDict()

    @classmethod
    def from_config(
        cls,
        config: Union[Mapping[str, Any], Dict[str, AgentPool]],
        store: RotationStateStore,
        classifier: Optional[ErrorClassifier] = None,
        log_dir: Optional[Union[str, Path]] = None,
    ) -> Optional["RotationHooks"]:
        """
        Build hooks from an agents config object or from loaded agent pools.

        Returns None when no agent has rotation enabled.
        """
        if config and all(isinstance(v, AgentPool) for v in config.values()):
            pools = dict(config)
        else:
            pools = load_agent_pools(config)

        agents = {
            name: AgentRotation(pool=pool, engine=RotationEngine(name, pool.config, store))
            for name, pool in pools.items()
            if pool.config.enabled and pool.models
        }
        if not agents:
            return None

        log_dir = log_dir if log_dir is not None else get_log_dir()
        decision_logger = setup_rotation_logger(log_dir) if log_dir is not None else None

        lib_logger.info(f"Model rotation enabled for agents: {', '.join(agents)}")
        return cls(agents, classifier=classifier, decision_logger=decision_logger)

    @property
    def agents(self) -> Dict[str, AgentRotation]:
        return dict(self._agents)

    def get_engine(self, agent: str) -> Optional[RotationEngine]:
        entry = self._agents.get(agent)
        return entry.engine if entry else None

    def select_model(self, agent: str) -> Optional[str]:
        """
        Model an agent should use for its next call.

        Falls back to the first model of the pool when every model is depleted.
        """
        entry = self._agents.get(agent)
        if entry is None or not entry.pool.models:
            return None
        models = entry.pool.models
        if not entry.pool.rotation_enabled:
            return models[0]
        return entry.engine.next_available_resource(models) or models[0]

    def handle_event(self, event: Mapping[str, Any]) -> Optional[RotationNotice]:
        """
        Process one host event.

        Returns:
            A notice to show the user, or None if nothing worth reporting happened
        """
        if not isinstance(event, Mapping) or event.get("type") != MESSAGE_UPDATED_EVENT:
            return None

        properties = _as_mapping(event.get("properties")) or {}
        info = _as_mapping(properties.get("info"))
        if info is None:
            lib_logger.debug("Ignoring message event without message info")
            return None

        if info.get("role") != "assistant":
            return None

        agent = _non_empty_str(info.get("agent"))
        entry = self._agents.get(agent) if agent else None
        if entry is None:
            return None

        model = _non_empty_str(info.get("modelID"))
        if model is None:
            return None

        key = self._message_key(properties, info)
        newly_recorded = key is None or self._remember(self._recorded, key)
        if newly_recorded:
            entry.engine.record_usage(model, extract_tokens_used(properties, info))

        error = info.get("error")
        if not error:
            if not newly_recorded:
                return None
            result = entry.engine.should_rotate_proactively(model, entry.pool.models)
            return self._notice(agent, model, result, "usage limit")

        if key is not None and not self._remember(self._handled_errors, key):
            return None

        parsed = self._classifier.classify(error)
        lib_logger.debug(
            f"[{agent}] Parsed error: kind={parsed.kind.value}, "
            f"triggers_rotation={parsed.triggers_rotation}"
        )
        if not parsed.triggers_rotation:
            return None

        result = entry.engine.rotate_on_classified_error(model, entry.pool.models)
        return self._notice(agent, model, result, parsed.kind.value, parsed)

    # =========================================================================
    # PRIVATE METHODS
    # =========================================================================

    @staticmethod
    def _message_key(
        properties: Mapping[str, Any], info: Mapping[str, Any]
    ) -> Optional[Tuple[Any, ...]]:
        """
        Identity of the message an event belongs to.

        Uses the message id, else the message creation time. Returns None when
        the event carries neither; such events are never de-duplicated.
        """
        session_id = properties.get("sessionID") or info.get("sessionID")
        message_id = info.get("id")
        if message_id is not None:
            return (session_id, message_id)
        created = (_as_mapping(info.get("time")) or {}).get("created")
        if created is not None:
            return (session_id, "created", created)
        return None

    @staticmethod
    def _remember(seen: "OrderedDict[Tuple[Any, ...], None]", key: Tuple[Any, ...]) -> bool:
        """Add ``key`` to ``seen``; False if it was already there."""
        if key in seen:
            seen.move_to_end(key)
            return False
        seen[key] = None
        while len(seen) > SEEN_MESSAGES_LIMIT:
            seen.popitem(last=False)
        return True

    def _notice(
        self,
        agent: str,
        model: str,
        result: RotationResult,
        cause: str,
        parsed: Optional[ParsedError] = None,
    ) -> Optional[RotationNotice]:
        if not result.rotated:
            return None

        if self._decision_logger is not None:
            log_rotation(self._decision_logger, agent, model, result, parsed)

        if result.all_depleted:
            return RotationNotice(
                title=NOTICE_TITLE,
                message=f"{agent}: All models depleted ({cause}). Please check your API quotas.",
                variant="error",
            )

        return RotationNotice(
            title=NOTICE_TITLE,
            message=f"{agent}: Rotating {model} -> {result.next_resource} ({result.reason})",
            variant="info",
        )
