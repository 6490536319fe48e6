import json
from pathlib import Path

import pytest
from rich.console import Console

from model_rotation import cli
from model_rotation.config import AgentPool, ResourcePoolConfig
from model_rotation.state_store import RotationStateStore
from model_rotation.status import build_status_table, describe_state


def _render(renderable) -> str:
    console = Console(record=True, width=200)
    console.print(renderable)
    return console.export_text()


@pytest.fixture
def recorded_console(monkeypatch: pytest.MonkeyPatch) -> Console:
    console = Console(record=True, width=200)
    monkeypatch.setattr(cli, "console", console)
    return console


@pytest.fixture
def agents_file(tmp_path: Path) -> Path:
    path = tmp_path / "model-rotation.json"
    path.write_text(
        json.dumps(
            {
                "agents": {
                    "oracle": {
                        "model": ["anthropic/claude-opus-4-5", "openai/gpt-5.2"],
                        "rotation": {"enabled": True, "limitValue": 50, "cooldownMs": 120000},
                    },
                    "explore": {"model": "google/gemini-3-flash"},
                }
            }
        ),
        encoding="utf-8",
    )
    return path


def test_describe_state(store: RotationStateStore) -> None:
    store.increment_usage("a", 3400)
    assert describe_state(store.get("a"), in_cooldown=False) == "1 calls, 3400 tokens"

    store.mark_depleted("a", 60)
    assert describe_state(store.get("a"), in_cooldown=True) == (
        "1 calls, 3400 tokens, cooling down until 2026-01-05T12:01:00.000Z"
    )
    assert describe_state(store.get("a"), in_cooldown=False) == "1 calls, 3400 tokens, depleted"


def test_status_table(store: RotationStateStore) -> None:
    pools = {
        "oracle": AgentPool(
            name="oracle",
            models=["a", "b"],
            config=ResourcePoolConfig(enabled=True, limit_value=50, cooldown_seconds=120),
        ),
        "explore": AgentPool(name="explore", models=["c"]),
    }
    store.increment_usage("a")
    store.mark_depleted("b", 60)

    text = _render(build_status_table(pools, store))

    assert "Model Rotation Status" in text
    assert "calls=50, cooldown=120s" in text
    assert "rotation disabled" in text
    assert "a (1 calls)" in text
    assert "cooling down until" in text
    assert "c (not tracked yet)" in text


def test_cli_status(agents_file: Path, state_path: Path, recorded_console: Console) -> None:
    exit_code = cli.main(["--state", str(state_path), "status", "--config", str(agents_file)])

    text = recorded_console.export_text()
    assert exit_code == 0
    assert "oracle" in text
    assert "explore" in text
    assert "openai/gpt-5.2 (not tracked yet)" in text


def test_cli_status_missing_config(
    tmp_path: Path, state_path: Path, recorded_console: Console
) -> None:
    missing = tmp_path / "missing.json"

    exit_code = cli.main(["--state", str(state_path), "status", "--config", str(missing)])

    assert exit_code == 1
    assert "Agents config not found" in recorded_console.export_text()


def test_cli_status_invalid_config(
    tmp_path: Path, state_path: Path, recorded_console: Console
) -> None:
    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")

    exit_code = cli.main(["--state", str(state_path), "status", "--config", str(broken)])

    assert exit_code == 1
    assert "Invalid agents config" in recorded_console.export_text()


def test_cli_reset_selected_models(
    store: RotationStateStore, state_path: Path, clock, recorded_console: Console
) -> None:
    store.increment_usage("a", 10)
    store.mark_depleted("a", 60)
    store.increment_usage("b")

    exit_code = cli.main(["--state", str(state_path), "reset", "a"])

    assert exit_code == 0
    assert "Reset 1 model(s)." in recorded_console.export_text()

    reloaded = RotationStateStore(state_path, clock=clock)
    assert reloaded.get("a").depleted is False
    assert reloaded.get("a").usage.in_cooldown is False
    assert reloaded.get("a").usage.call_count == 0
    assert reloaded.get("b").usage.call_count == 1


def test_cli_reset_all_models(
    store: RotationStateStore, state_path: Path, clock, recorded_console: Console
) -> None:
    store.increment_usage("a")
    store.increment_usage("b")

    cli.main(["--state", str(state_path), "reset"])

    reloaded = RotationStateStore(state_path, clock=clock)
    assert [reloaded.get(m).usage.call_count for m in ("a", "b")] == [0, 0]
    assert "Reset 2 model(s)." in recorded_console.export_text()


def test_cli_prune(state_path: Path, recorded_console: Console) -> None:
    state_path.write_text(
        json.dumps(
            {
                "old": {
                    "usage": {
                        "callCount": 0,
                        "lastUsedAt": "2020-01-01T00:00:00.000Z",
                        "inCooldown": False,
                        "cooldownUntil": None,
                    },
                    "depleted": False,
                }
            }
        ),
        encoding="utf-8",
    )

    exit_code = cli.main(["--state", str(state_path), "prune", "--days", "30"])

    assert exit_code == 0
    assert "Pruned 1 stale model(s)." in recorded_console.export_text()
    assert json.loads(state_path.read_text(encoding="utf-8")) == {}


def test_cli_requires_command() -> None:
    with pytest.raises(SystemExit):
        cli.main([])
