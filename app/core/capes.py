from __future__ import annotations

from typing import Callable

from app.api.models import CapeRecord, CapeUpdateRequest
from app.core.clock import Clock, system_clock
from app.core.emotes import normalize_identity
from app.core.errors import AuthError, ValidationError
from app.core.keyed_store import KeyedStore

DEFAULT_CAPE_TTL_MS = 7 * 24 * 60 * 60 * 1000
MIN_CLIENT_KEY_LENGTH = 16


class CapeLedger:
    """Cape records guarded by a per-identity ownership key (first write wins)."""

    def __init__(
        self,
        *,
        records: dict[str, CapeRecord] | None = None,
        ttl_ms: int = DEFAULT_CAPE_TTL_MS,
        clock: Clock = system_clock,
        persist: Callable[[], None] | None = None,
    ) -> None:
        self.store: KeyedStore[CapeRecord] = KeyedStore(records)
        self.ttl_ms = ttl_ms
        self.clock = clock
        self._persist = persist

    def cleanup(self) -> list[str]:
        evicted = self.store.evict_stale(now=self.clock(), ttl_ms=self.ttl_ms)
        if evicted and self._persist is not None:
            self._persist()
        return evicted

    def get_all(self) -> dict[str, CapeRecord]:
        self.cleanup()
        return self.store.snapshot()

    def write(self, identity: str, client_key: str | None, update: CapeUpdateRequest) -> CapeRecord:
        ident = normalize_identity(identity)
        key = client_key or ""
        if len(key) < MIN_CLIENT_KEY_LENGTH:
            raise ValidationError("missing clientKey")

        existing = self.store.get(ident)
        if existing is not None and existing.client_key and existing.client_key != key:
            raise AuthError("clientKey mismatch")

        # Full replace, not a merge: omitted fields fall back to defaults.
        record = CapeRecord(
            name=update.name or "",
            cape_id=update.cape_id or "default",
            custom_url=update.custom_url or "",
            enabled=bool(update.enabled),
            client_key=key,
            last_seen=update.last_seen if update.last_seen and update.last_seen > 0 else self.clock(),
        )
        self.store.put(ident, record)
        if self._persist is not None:
            self._persist()
        return record
