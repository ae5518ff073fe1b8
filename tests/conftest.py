from __future__ import annotations

import os
from collections.abc import Generator

import fakeredis
import pytest
from fastapi.testclient import TestClient

# The module-level app builds its own state at startup; keep it off disk in tests.
os.environ.setdefault("CAPES_STORAGE_BACKEND", "memory")

from app.api.deps import get_app_state  # noqa: E402
from app.config import Settings  # noqa: E402
from app.infra.snapshot import RedisSnapshotStore  # noqa: E402
from app.main import app  # noqa: E402
from app.state import AppState  # noqa: E402

T0 = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = T0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        storage_backend="redis",
        emote_ttl_s=60.0,
        long_poll_timeout_s=0.2,
        long_poll_max_timeout_s=5.0,
    )


@pytest.fixture()
def redis_client() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def sync_state(settings: Settings, redis_client: fakeredis.FakeRedis, clock: FakeClock) -> AppState:
    snapshots = RedisSnapshotStore(r=redis_client, key=settings.redis_key)
    return AppState(snapshots=snapshots, settings=settings, clock=clock)


@pytest.fixture()
def client(sync_state: AppState) -> Generator[TestClient, None, None]:
    def _override() -> AppState:
        return sync_state

    app.dependency_overrides[get_app_state] = _override
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()

