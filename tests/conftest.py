import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from model_rotation.config import ResourcePoolConfig
from model_rotation.engine import RotationEngine
from model_rotation.state_store import RotationStateStore


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / "model-rotation-state.json"


@pytest.fixture
def store(state_path: Path, clock: FakeClock) -> RotationStateStore:
    return RotationStateStore(state_path, clock=clock, lock_timeout=1.0)


@pytest.fixture
def pool_config() -> ResourcePoolConfig:
    return ResourcePoolConfig(enabled=True, limit_value=3, cooldown_seconds=60)


@pytest.fixture
def engine(pool_config: ResourcePoolConfig, store: RotationStateStore) -> RotationEngine:
    return RotationEngine("test-agent", pool_config, store)
