from __future__ import annotations

from app.api.models import EmoteRecord
from app.core.keyed_store import KeyedStore


def test_put_get_delete() -> None:
    store: KeyedStore[EmoteRecord] = KeyedStore()
    rec = EmoteRecord(name="Steve", type="wave", active=True, started_at=1, last_seen=1)

    store.put("u1", rec)
    assert store.get("u1") == rec
    assert "u1" in store
    assert len(store) == 1

    assert store.delete("u1") is True
    assert store.delete("u1") is False
    assert store.get("u1") is None


def test_snapshot_is_detached_from_later_writes() -> None:
    store: KeyedStore[EmoteRecord] = KeyedStore()
    store.put("u1", EmoteRecord(last_seen=1))
    snap = store.snapshot()

    store.put("u2", EmoteRecord(last_seen=2))
    store.delete("u1")

    assert set(snap) == {"u1"}
    assert list(store) == ["u2"]


def test_evict_stale_drops_old_and_unset_records() -> None:
    store: KeyedStore[EmoteRecord] = KeyedStore(
        {
            "fresh": EmoteRecord(last_seen=10_000),
            "edge": EmoteRecord(last_seen=5_000),
            "old": EmoteRecord(last_seen=4_999),
            "never": EmoteRecord(last_seen=0),
        }
    )

    evicted = store.evict_stale(now=10_000, ttl_ms=5_000)

    assert sorted(evicted) == ["never", "old"]
    assert sorted(store) == ["edge", "fresh"]
