from __future__ import annotations

import pytest

from app.api.models import EmoteRecord, EmoteUpdateRequest
from app.core.emotes import EmoteLedger, apply_emote_update
from app.core.errors import ValidationError


@pytest.fixture()
def ledger(clock) -> EmoteLedger:  # type: ignore[no-untyped-def]
    return EmoteLedger(clock=clock, ttl_ms=60_000)


def _write(ledger: EmoteLedger, uuid: str = "u1", **fields) -> EmoteRecord:  # type: ignore[no-untyped-def]
    ledger.write(uuid, EmoteUpdateRequest(**fields))
    rec = ledger.store.get(uuid)
    assert rec is not None
    return rec


def test_every_accepted_write_bumps_revision_by_one(ledger: EmoteLedger, clock) -> None:  # type: ignore[no-untyped-def]
    assert ledger.revision == 0
    revs = []
    for i in range(5):
        clock.advance(10)
        revs.append(ledger.write(f"u{i % 2}", EmoteUpdateRequest(type="wave")))
    assert revs == [1, 2, 3, 4, 5]
    assert ledger.revision == 5


def test_cleanup_only_reads_do_not_bump_revision(ledger: EmoteLedger, clock) -> None:  # type: ignore[no-untyped-def]
    ledger.write("u1", EmoteUpdateRequest(type="wave"))
    clock.advance(61_000)

    snap = ledger.get_all()

    assert snap.records == {}
    assert snap.revision == 1
    assert ledger.get_all().revision == 1


def test_same_type_refresh_keeps_started_at(ledger: EmoteLedger, clock) -> None:  # type: ignore[no-untyped-def]
    first = _write(ledger, type="wave", active=True)
    clock.advance(500)
    second = _write(ledger, type="wave", active=True)

    assert second.started_at == first.started_at
    assert second.last_seen == first.last_seen + 500


def test_type_change_moves_started_at(ledger: EmoteLedger, clock) -> None:  # type: ignore[no-untyped-def]
    _write(ledger, type="wave", active=True)
    t2 = clock.advance(500)
    second = _write(ledger, type="dance", active=True)

    assert second.type == "dance"
    assert second.started_at == t2


def test_reactivation_resets_started_at(ledger: EmoteLedger, clock) -> None:  # type: ignore[no-untyped-def]
    first = _write(ledger, type="wave", active=True)
    clock.advance(100)
    stopped = _write(ledger, type="wave", active=False)
    t3 = clock.advance(100)
    third = _write(ledger, type="wave", active=True)

    assert stopped.started_at == first.started_at
    assert third.started_at == t3


def test_deactivation_keeps_last_known_type(ledger: EmoteLedger, clock) -> None:  # type: ignore[no-untyped-def]
    _write(ledger, type="wave", active=True)
    clock.advance(100)
    stopped = _write(ledger, type="", active=False)

    assert stopped.active is False
    assert stopped.type == "wave"


def test_deactivation_without_prior_type_takes_incoming_type(ledger: EmoteLedger) -> None:
    rec = _write(ledger, type="sit", active=False)
    assert rec.type == "sit"
    assert rec.active is False


def test_omitted_active_means_active_and_name_is_sticky(ledger: EmoteLedger, clock) -> None:  # type: ignore[no-untyped-def]
    _write(ledger, name="Steve", type="wave")
    clock.advance(100)
    rec = _write(ledger, type="wave")

    assert rec.active is True
    assert rec.name == "Steve"


def test_active_write_without_type_keeps_previous_type(ledger: EmoteLedger, clock) -> None:  # type: ignore[no-untyped-def]
    first = _write(ledger, type="wave", active=True)
    clock.advance(100)
    rec = _write(ledger, active=True)

    assert rec.type == "wave"
    assert rec.started_at == first.started_at


def test_apply_update_without_previous_record_starts_now() -> None:
    rec = apply_emote_update(prev=None, update=EmoteUpdateRequest(active=False), now=42)
    assert rec == EmoteRecord(name="", type="", active=False, started_at=42, last_seen=42)


@pytest.mark.parametrize("uuid", ["", "   "])
def test_blank_identity_is_rejected(ledger: EmoteLedger, uuid: str) -> None:
    with pytest.raises(ValidationError):
        ledger.write(uuid, EmoteUpdateRequest(type="wave"))
    assert ledger.revision == 0


def test_identity_is_stripped(ledger: EmoteLedger) -> None:
    ledger.write("  u1 ", EmoteUpdateRequest(type="wave"))
    assert ledger.store.get("u1") is not None


def test_listeners_see_the_new_revision_before_persist(clock) -> None:  # type: ignore[no-untyped-def]
    calls: list[str] = []
    ledger = EmoteLedger(clock=clock, persist=lambda: calls.append("persist"))
    ledger.add_listener(lambda rev: calls.append(f"rev:{rev}"))

    ledger.write("u1", EmoteUpdateRequest(type="wave"))

    assert calls == ["rev:1", "persist"]


def test_notify_on_eviction_mode_bumps_once_per_sweep(clock) -> None:  # type: ignore[no-untyped-def]
    seen: list[int] = []
    ledger = EmoteLedger(clock=clock, ttl_ms=1_000, notify_on_eviction=True)
    ledger.add_listener(seen.append)
    ledger.write("u1", EmoteUpdateRequest(type="wave"))
    ledger.write("u2", EmoteUpdateRequest(type="wave"))
    clock.advance(2_000)

    assert sorted(ledger.cleanup()) == ["u1", "u2"]
    assert ledger.revision == 3
    assert seen == [1, 2, 3]

    # Nothing left to evict: no further bump.
    assert ledger.cleanup() == []
    assert ledger.revision == 3


def test_restored_revision_continues_from_persisted_value(clock) -> None:  # type: ignore[no-untyped-def]
    ledger = EmoteLedger(clock=clock, revision=41)
    assert ledger.write("u1", EmoteUpdateRequest(type="wave")) == 42
