import json
from pathlib import Path

import pytest

from model_rotation.config import AgentPool, ResourcePoolConfig
from model_rotation.hooks import RotationHooks, RotationNotice, extract_tokens_used
from model_rotation.state_store import RotationStateStore


RATE_LIMIT_ERROR = {
    "status": 429,
    "error": {"type": "rate_limit_error", "message": "Rate limit exceeded"},
}


def _agents_config(models=("a", "b", "c"), enabled: bool = True) -> dict:
    return {
        "agents": {
            "oracle": {
                "model": list(models),
                "rotation": {"enabled": enabled, "limitValue": 3, "cooldownMs": 60000},
            },
            "explore": {"model": ["x", "y"]},
        }
    }


def _event(message_id: str, model: str = "a", agent: str = "oracle", **info) -> dict:
    return {
        "type": "message.updated",
        "properties": {
            "sessionID": "ses_1",
            "info": {"id": message_id, "role": "assistant", "agent": agent, "modelID": model, **info},
        },
    }


@pytest.fixture(autouse=True)
def _no_decision_log(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MODEL_ROTATION_LOG_DIR", raising=False)


@pytest.fixture
def hooks(store: RotationStateStore) -> RotationHooks:
    return RotationHooks.from_config(_agents_config(), store)


def test_from_config_only_enabled_agents(hooks: RotationHooks) -> None:
    assert list(hooks.agents) == ["oracle"]
    assert hooks.get_engine("explore") is None
    assert hooks.get_engine("oracle").config.limit_value == 3


def test_from_config_without_enabled_agents(store: RotationStateStore) -> None:
    assert RotationHooks.from_config(_agents_config(enabled=False), store) is None
    assert RotationHooks.from_config({}, store) is None


def test_from_config_accepts_loaded_pools(store: RotationStateStore) -> None:
    pools = {
        "oracle": AgentPool(name="oracle", models=["a", "b"], config=ResourcePoolConfig(enabled=True))
    }

    hooks = RotationHooks.from_config(pools, store)

    assert list(hooks.agents) == ["oracle"]


def test_repeated_updates_record_usage_once(hooks: RotationHooks, store) -> None:
    for _ in range(4):
        assert hooks.handle_event(_event("msg_1")) is None

    assert store.get("a").usage.call_count == 1


def _anonymous_event(model: str = "a", **info) -> dict:
    event = _event("unused", model=model, **info)
    del event["properties"]["info"]["id"]
    return event


def test_messages_without_id_are_each_counted(hooks: RotationHooks, store) -> None:
    for _ in range(3):
        hooks.handle_event(_anonymous_event())

    assert store.get("a").usage.call_count == 3


def test_messages_without_id_reach_usage_limit(hooks: RotationHooks) -> None:
    hooks.handle_event(_anonymous_event())
    hooks.handle_event(_anonymous_event())

    notice = hooks.handle_event(_anonymous_event())

    assert notice is not None
    assert notice.message == "oracle: Rotating a -> b (Usage limit reached (3/3 calls))"


def test_messages_without_id_use_creation_time(hooks: RotationHooks, store) -> None:
    hooks.handle_event(_anonymous_event(time={"created": 1767614400000}))
    hooks.handle_event(_anonymous_event(time={"created": 1767614400000}))
    hooks.handle_event(_anonymous_event(time={"created": 1767614460000}))

    assert store.get("a").usage.call_count == 2


def test_records_tokens_from_message(hooks: RotationHooks, store) -> None:
    hooks.handle_event(
        _event("msg_1", tokens={"input": 100, "output": 40, "cache": {"read": 10, "write": 5}})
    )

    assert store.get("a").usage.token_count == 150


def test_proactive_rotation_notice(hooks: RotationHooks) -> None:
    hooks.handle_event(_event("msg_1"))
    hooks.handle_event(_event("msg_2"))

    notice = hooks.handle_event(_event("msg_3"))

    assert notice == RotationNotice(
        title="Model Rotation",
        message="oracle: Rotating a -> b (Usage limit reached (3/3 calls))",
        variant="info",
    )
    assert hooks.select_model("oracle") == "b"


def test_error_rotation_notice(hooks: RotationHooks, store) -> None:
    notice = hooks.handle_event(_event("msg_1", error=RATE_LIMIT_ERROR))

    assert notice.variant == "info"
    assert notice.message == "oracle: Rotating a -> b (API quota/rate limit error)"
    assert store.get("a").depleted is True
    assert store.get("a").usage.call_count == 1


def test_error_is_handled_once_per_message(hooks: RotationHooks, store) -> None:
    assert hooks.handle_event(_event("msg_1", error=RATE_LIMIT_ERROR)) is not None

    assert hooks.handle_event(_event("msg_1", error=RATE_LIMIT_ERROR)) is None
    assert store.get("b") is None


def test_non_rotating_error_is_ignored(hooks: RotationHooks, store) -> None:
    error = {"name": "APIError", "data": {"message": "Internal server error"}}

    assert hooks.handle_event(_event("msg_1", error=error)) is None
    assert store.get("a").depleted is False


def test_all_depleted_notice(store: RotationStateStore) -> None:
    hooks = RotationHooks.from_config(_agents_config(models=("a", "b")), store)
    store.mark_depleted("b", 60)

    notice = hooks.handle_event(_event("msg_1", error=RATE_LIMIT_ERROR))

    assert notice.variant == "error"
    assert notice.message == (
        "oracle: All models depleted (rate_limit). Please check your API quotas."
    )
    assert hooks.select_model("oracle") == "a"


@pytest.mark.parametrize(
    "event",
    [
        {"type": "session.idle", "properties": {}},
        {"type": "message.updated", "properties": {}},
        {"type": "message.updated", "properties": {"info": {"role": "user", "agent": "oracle"}}},
        _event("msg_1", agent="explore"),
        _event("msg_1", agent="unknown"),
        _event("msg_1", model=""),
        "not-an-event",
    ],
)
def test_irrelevant_events_are_ignored(hooks: RotationHooks, store, event) -> None:
    assert hooks.handle_event(event) is None
    assert store.list_resources() == []


def test_select_model(hooks: RotationHooks, store, clock) -> None:
    assert hooks.select_model("oracle") == "a"
    assert hooks.select_model("unknown") is None

    store.mark_depleted("a", 60)
    assert hooks.select_model("oracle") == "b"

    clock.advance(seconds=61)
    assert hooks.select_model("oracle") == "a"


def test_decision_log_is_written(store: RotationStateStore, tmp_path: Path) -> None:
    log_dir = tmp_path / "logs"
    hooks = RotationHooks.from_config(_agents_config(), store, log_dir=log_dir)

    hooks.handle_event(_event("msg_1", error=RATE_LIMIT_ERROR))

    records = [
        json.loads(line)
        for line in (log_dir / "rotations.log").read_text(encoding="utf-8").splitlines()
    ]
    assert records[-1]["agent"] == "oracle"
    assert records[-1]["model"] == "a"
    assert records[-1]["next_model"] == "b"
    assert records[-1]["error_kind"] == "rate_limit"
    assert records[-1]["error_origin"] == "anthropic"


def test_extract_tokens_used() -> None:
    assert extract_tokens_used({"tokensUsed": 42}, {"tokens": {"input": 1}}) == 42
    assert extract_tokens_used({}, {"tokens": {"input": 5, "output": 7}}) == 12
    assert extract_tokens_used({}, {}) is None
