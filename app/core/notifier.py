from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from statemachine import State, StateMachine

from app.api.models import EmoteSnapshot
from app.core.emotes import EmoteLedger

logger = logging.getLogger(__name__)

DEFAULT_LONG_POLL_TIMEOUT_S = 25.0


class WaiterLifecycle(StateMachine):
    """Exactly-once lifecycle of a long-poll observer.

    - pending -> resolved: the revision moved past `since_rev`.
    - pending -> expired: the deadline fired first (keep-alive response).
    - pending -> cancelled: the client went away; nothing is sent.
    """

    pending = State("Pending", initial=True)
    resolved = State("Resolved", final=True)
    expired = State("Expired", final=True)
    cancelled = State("Cancelled", final=True)

    resolve = pending.to(resolved)
    expire = pending.to(expired)
    cancel = pending.to(cancelled)


class Waiter:
    """Handle returned by `ChangeNotifier.register`.

    `future` settles exactly once: with a snapshot on resolve/expire, or
    cancelled on disconnect.
    """

    def __init__(self, *, since_rev: int, future: asyncio.Future[EmoteSnapshot]) -> None:
        self.since_rev = since_rev
        self.future = future
        self.timer: asyncio.TimerHandle | None = None
        self.lifecycle = WaiterLifecycle()

    @property
    def outcome(self) -> str:
        return str(self.lifecycle.current_state.id)


class ChangeNotifier:
    """Holds pending long-poll observers for an EmoteLedger.

    Every exit path (revision advance, deadline, disconnect) goes through
    `_take`, which removes the waiter from the pending set before anything is
    done with it. Whoever fails to take a waiter does nothing, so a timer and a
    revision advance racing for the same observer settle it once.
    """

    def __init__(self, ledger: EmoteLedger, *, default_timeout_s: float = DEFAULT_LONG_POLL_TIMEOUT_S) -> None:
        self.ledger = ledger
        self.default_timeout_s = default_timeout_s
        self._waiters: set[Waiter] = set()
        ledger.add_listener(self.publish)

    @property
    def pending_count(self) -> int:
        return len(self._waiters)

    def register(self, since_rev: int, timeout_s: float | None = None) -> Waiter:
        loop = asyncio.get_running_loop()
        waiter = Waiter(since_rev=since_rev, future=loop.create_future())

        if since_rev < self.ledger.revision:
            waiter.lifecycle.resolve()
            waiter.future.set_result(self.ledger.snapshot())
            return waiter

        timeout = self.default_timeout_s if timeout_s is None else timeout_s
        self._waiters.add(waiter)
        waiter.timer = loop.call_later(max(0.0, timeout), self._expire, waiter)
        return waiter

    def publish(self, revision: int) -> int:
        """Resolve every waiter behind `revision` with one shared snapshot."""

        behind = [w for w in self._waiters if w.since_rev < revision]
        if not behind:
            return 0

        snapshot = self.ledger.snapshot()
        resolved = 0
        for waiter in behind:
            if not self._take(waiter):
                continue
            waiter.lifecycle.resolve()
            if not waiter.future.done():
                waiter.future.set_result(snapshot)
            resolved += 1

        logger.debug("revision %d resolved %d long-poll waiter(s)", revision, resolved)
        return resolved

    def cancel(self, waiter: Waiter) -> bool:
        if not self._take(waiter):
            return False
        waiter.lifecycle.cancel()
        waiter.future.cancel()
        return True

    def cancel_all(self) -> int:
        count = 0
        for waiter in list(self._waiters):
            if self.cancel(waiter):
                count += 1
        return count

    async def wait(
        self,
        since_rev: int,
        timeout_s: float | None = None,
        *,
        until_disconnected: Callable[[], Awaitable[None]] | None = None,
    ) -> EmoteSnapshot | None:
        """Long-poll for a revision past `since_rev`.

        Returns the snapshot on advance or deadline, or None when
        `until_disconnected` finishes first. The snapshot is taken when this
        coroutine resumes, so writes that land in between are coalesced into it.
        """

        waiter = self.register(since_rev, timeout_s)
        if waiter.future.done():
            return self.ledger.snapshot()

        watcher: asyncio.Future[None] | None = None
        try:
            if until_disconnected is None:
                await asyncio.shield(waiter.future)
                return self.ledger.snapshot()

            watcher = asyncio.ensure_future(until_disconnected())
            await asyncio.wait({waiter.future, watcher}, return_when=asyncio.FIRST_COMPLETED)
            if waiter.future.done() and not waiter.future.cancelled():
                return self.ledger.snapshot()
            return None
        finally:
            if watcher is not None and not watcher.done():
                watcher.cancel()
            if self.cancel(waiter):
                logger.debug("long-poll waiter at rev %d cancelled by disconnect", since_rev)

    def _expire(self, waiter: Waiter) -> None:
        if not self._take(waiter):
            return
        waiter.lifecycle.expire()
        if not waiter.future.done():
            waiter.future.set_result(self.ledger.snapshot())

    def _take(self, waiter: Waiter) -> bool:
        if waiter not in self._waiters:
            return False
        self._waiters.discard(waiter)
        if waiter.timer is not None:
            waiter.timer.cancel()
            waiter.timer = None
        return True
