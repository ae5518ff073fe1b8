from __future__ import annotations

import logging
from typing import Callable

from app.api.models import EmoteRecord, EmoteSnapshot, EmoteUpdateRequest
from app.core.clock import Clock, system_clock
from app.core.errors import ValidationError
from app.core.keyed_store import KeyedStore

logger = logging.getLogger(__name__)

RevisionListener = Callable[[int], None]

DEFAULT_EMOTE_TTL_MS = 60_000


def normalize_identity(identity: str | None) -> str:
    ident = (identity or "").strip()
    if not ident:
        raise ValidationError("missing uuid")
    return ident


def apply_emote_update(*, prev: EmoteRecord | None, update: EmoteUpdateRequest, now: int) -> EmoteRecord:
    """Merge an incoming emote update into the previous record.

    - `startedAt` moves to `now` only on inactive -> active, or on a type change while active.
    - Deactivating keeps the last known type so clients can still display it.
    - `lastSeen` always becomes `now`.
    """

    active = update.active is not False
    incoming_type = update.type or ""
    incoming_name = update.name or ""

    prev_type = prev.type if prev is not None else ""
    prev_name = prev.name if prev is not None else ""
    # A record without a type never counted as playing anything.
    prev_active = prev is not None and prev.active and bool(prev.type)

    started_at = prev.started_at if prev is not None and prev.started_at else now

    if active:
        effective_type = incoming_type or prev_type
        type_changed = bool(effective_type) and effective_type != prev_type
        if type_changed or not prev_active:
            started_at = now
    else:
        effective_type = prev_type or incoming_type

    return EmoteRecord(
        name=incoming_name or prev_name,
        type=effective_type,
        active=active,
        started_at=started_at,
        last_seen=now,
    )


class EmoteLedger:
    """Emote records plus the process-wide revision counter.

    Every accepted write bumps the revision by exactly one, then notifies
    listeners (the long-poll notifier), then persists.
    """

    def __init__(
        self,
        *,
        records: dict[str, EmoteRecord] | None = None,
        revision: int = 0,
        ttl_ms: int = DEFAULT_EMOTE_TTL_MS,
        notify_on_eviction: bool = False,
        clock: Clock = system_clock,
        persist: Callable[[], None] | None = None,
    ) -> None:
        self.store: KeyedStore[EmoteRecord] = KeyedStore(records)
        self._revision = max(0, int(revision))
        self.ttl_ms = ttl_ms
        self.notify_on_eviction = notify_on_eviction
        self.clock = clock
        self._persist = persist
        self._listeners: list[RevisionListener] = []

    @property
    def revision(self) -> int:
        return self._revision

    def add_listener(self, listener: RevisionListener) -> None:
        self._listeners.append(listener)

    def snapshot(self) -> EmoteSnapshot:
        return EmoteSnapshot(revision=self._revision, server_now=self.clock(), records=self.store.snapshot())

    def cleanup(self) -> list[str]:
        evicted = self.store.evict_stale(now=self.clock(), ttl_ms=self.ttl_ms)
        if not evicted:
            return evicted

        logger.debug("evicted %d stale emote record(s)", len(evicted))
        if self.notify_on_eviction:
            self._advance()
        else:
            # Evictions are not notifiable events: long-poll clients only see them
            # with the next write. Still snapshot so a restart doesn't resurrect them.
            self._save()
        return evicted

    def get_all(self) -> EmoteSnapshot:
        self.cleanup()
        return self.snapshot()

    def write(self, identity: str, update: EmoteUpdateRequest) -> int:
        ident = normalize_identity(identity)
        record = apply_emote_update(prev=self.store.get(ident), update=update, now=self.clock())
        self.store.put(ident, record)
        return self._advance()

    def _advance(self) -> int:
        self._revision += 1
        rev = self._revision
        for listener in list(self._listeners):
            listener(rev)
        self._save()
        return rev

    def _save(self) -> None:
        if self._persist is not None:
            self._persist()
