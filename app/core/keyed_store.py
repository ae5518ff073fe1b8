from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Generic, Protocol, TypeVar


class Timestamped(Protocol):
    @property
    def last_seen(self) -> int: ...


R = TypeVar("R", bound=Timestamped)


class KeyedStore(Generic[R]):
    """In-memory identity -> record mapping with TTL eviction.

    Contract:
      - `get/put/delete` are plain dict operations on immutable records.
      - `evict_stale(now, ttl_ms)` drops records whose `last_seen` is unset or
        older than the TTL; callers run it lazily on reads.

    There is no locking: every mutation happens on the event loop thread.
    """

    def __init__(self, records: Mapping[str, R] | None = None) -> None:
        self._records: dict[str, R] = dict(records or {})

    def get(self, identity: str) -> R | None:
        return self._records.get(identity)

    def put(self, identity: str, record: R) -> None:
        self._records[identity] = record

    def delete(self, identity: str) -> bool:
        return self._records.pop(identity, None) is not None

    def items(self) -> list[tuple[str, R]]:
        return list(self._records.items())

    def snapshot(self) -> dict[str, R]:
        # Records are frozen, so a shallow copy is enough to detach from later writes.
        return dict(self._records)

    def evict_stale(self, *, now: int, ttl_ms: int) -> list[str]:
        evicted: list[str] = []
        for identity, record in self.items():
            last_seen = record.last_seen if record is not None else 0
            if not last_seen or now - last_seen > ttl_ms:
                del self._records[identity]
                evicted.append(identity)
        return evicted

    def __contains__(self, identity: object) -> bool:
        return identity in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)
