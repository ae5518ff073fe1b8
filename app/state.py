from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from app.api.models import CapeRecord, EmoteRecord, PersistedDocument
from app.config import Settings
from app.core.capes import CapeLedger
from app.core.clock import Clock, system_clock
from app.core.emotes import EmoteLedger
from app.core.errors import PersistenceError
from app.core.notifier import ChangeNotifier
from app.infra.redis_client import create_redis
from app.infra.snapshot import FileSnapshotStore, MemorySnapshotStore, RedisSnapshotStore, SnapshotStore

logger = logging.getLogger(__name__)


def _parse_records(raw: Any, model: type[CapeRecord] | type[EmoteRecord], *, kind: str) -> dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    out: dict[str, Any] = {}
    for identity, value in raw.items():
        if not isinstance(value, dict):
            continue
        try:
            out[str(identity)] = model.model_validate(value)
        except PydanticValidationError:
            logger.warning("skipping malformed persisted %s record %r", kind, identity)
    return out


def parse_document(raw: Any) -> PersistedDocument:
    """Decode a persisted document, tolerating older layouts.

    - Current: `{capes, emotes, emotesRev}`.
    - Legacy: a bare `{uuid: cape}` map written before emotes existed.
    - Anything else loads as an empty document.
    """

    if not isinstance(raw, dict):
        return PersistedDocument()

    if not any(k in raw for k in ("capes", "emotes", "emotesRev")):
        return PersistedDocument(capes=_parse_records(raw, CapeRecord, kind="cape"))

    try:
        rev = int(raw.get("emotesRev") or 0)
    except (TypeError, ValueError):
        rev = 0

    return PersistedDocument(
        capes=_parse_records(raw.get("capes"), CapeRecord, kind="cape"),
        emotes=_parse_records(raw.get("emotes"), EmoteRecord, kind="emote"),
        emotes_rev=max(0, rev),
    )


def build_snapshot_store(settings: Settings) -> SnapshotStore:
    if settings.storage_backend == "redis":
        return RedisSnapshotStore(r=create_redis(settings.redis_url), key=settings.redis_key)
    if settings.storage_backend == "memory":
        return MemorySnapshotStore()
    return FileSnapshotStore(settings.data_file)


class AppState:
    """Owns the ledgers, notifier and snapshot store for one process.

    Built once in the FastAPI lifespan and handed to routes through a dependency;
    nothing here is a module-level singleton.
    """

    def __init__(
        self,
        *,
        snapshots: SnapshotStore,
        settings: Settings | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self.settings = settings or Settings()
        self.snapshots = snapshots
        self.clock = clock

        document = self._load_document()
        self.capes = CapeLedger(
            records=document.capes,
            ttl_ms=int(self.settings.cape_ttl_s * 1000),
            clock=clock,
            persist=self.persist,
        )
        self.emotes = EmoteLedger(
            records=document.emotes,
            revision=document.emotes_rev,
            ttl_ms=int(self.settings.emote_ttl_s * 1000),
            notify_on_eviction=self.settings.emote_notify_on_eviction,
            clock=clock,
            persist=self.persist,
        )
        self.notifier = ChangeNotifier(self.emotes, default_timeout_s=self.settings.long_poll_timeout_s)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppState":
        return cls(snapshots=build_snapshot_store(settings), settings=settings)

    def _load_document(self) -> PersistedDocument:
        try:
            raw = self.snapshots.load()
        except PersistenceError as e:
            logger.warning("starting with empty state: %s", e)
            return PersistedDocument()
        document = parse_document(raw)
        logger.info(
            "loaded %d cape(s), %d emote(s) at revision %d",
            len(document.capes),
            len(document.emotes),
            document.emotes_rev,
        )
        return document

    def document(self) -> PersistedDocument:
        return PersistedDocument(
            capes=self.capes.store.snapshot(),
            emotes=self.emotes.store.snapshot(),
            emotes_rev=self.emotes.revision,
        )

    def persist(self) -> None:
        """Best-effort snapshot; failures are logged and never reach the caller."""

        try:
            self.snapshots.save(self.document().model_dump(by_alias=True))
        except PersistenceError as e:
            logger.error("snapshot save failed: %s", e)

    def shutdown(self) -> None:
        cancelled = self.notifier.cancel_all()
        if cancelled:
            logger.info("cancelled %d pending long-poll waiter(s) on shutdown", cancelled)
