"""Pending observation requests, at most one per caller."""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, Optional

from webpilot.src.utils.models import Snapshot

SnapshotProducer = Callable[[], Awaitable[Snapshot]]


class SessionRegistry:
    """
    Tracks in-flight snapshot requests keyed by caller id.

    A second request for a caller that already has one in flight joins it and
    gets the same snapshot. Requests that are not answered within the timeout
    resolve to an empty snapshot, as do producers that raise. Entries are
    removed as soon as the request settles.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        log_callback: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.timeout = timeout
        self._pending: Dict[str, asyncio.Future] = {}
        self._producers: Dict[str, asyncio.Task] = {}
        self._log_callback = log_callback

    def _log(self, message: str) -> None:
        print(f"[Registry] {message}")
        if self._log_callback:
            self._log_callback(message)

    def is_pending(self, caller_id: str) -> bool:
        future = self._pending.get(caller_id)
        return future is not None and not future.done()

    def pending_count(self) -> int:
        return sum(1 for future in self._pending.values() if not future.done())

    async def request(
        self,
        caller_id: str,
        producer: Optional[SnapshotProducer] = None,
        timeout: Optional[float] = None,
    ) -> Snapshot:
        """
        Wait for a snapshot for ``caller_id``.

        With a ``producer`` the snapshot is built in the background; without
        one the request waits for :meth:`deliver`.
        """
        wait_for = self.timeout if timeout is None else timeout
        existing = self._pending.get(caller_id)
        if existing is not None and not existing.done():
            self._log(f"Joining in-flight observation for {caller_id}")
            try:
                return await asyncio.wait_for(asyncio.shield(existing), wait_for)
            except asyncio.TimeoutError:
                return Snapshot.empty()

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[caller_id] = future
        if producer is not None:
            self._producers[caller_id] = asyncio.ensure_future(self._produce(caller_id, future, producer))
        try:
            return await asyncio.wait_for(asyncio.shield(future), wait_for)
        except asyncio.TimeoutError:
            self._log(f"Observation for {caller_id} timed out after {wait_for}s, using empty snapshot")
            if not future.done():
                future.set_result(Snapshot.empty())
            return future.result()
        finally:
            if self._pending.get(caller_id) is future:
                del self._pending[caller_id]
            task = self._producers.pop(caller_id, None)
            if task is not None and not task.done():
                task.cancel()

    async def _produce(self, caller_id: str, future: asyncio.Future, producer: SnapshotProducer) -> None:
        try:
            snapshot = await producer()
        except Exception as exc:
            self._log(f"Observation for {caller_id} failed: {exc}")
            snapshot = Snapshot.empty()
        if not future.done():
            future.set_result(snapshot)

    def deliver(self, caller_id: str, snapshot: Snapshot) -> bool:
        """Resolve the pending request for ``caller_id``. False if none is waiting."""
        future = self._pending.get(caller_id)
        if future is None or future.done():
            return False
        future.set_result(snapshot)
        return True

    def cancel_all(self) -> None:
        for caller_id, future in list(self._pending.items()):
            if not future.done():
                future.set_result(Snapshot.empty())
        self._pending.clear()
        for task in self._producers.values():
            task.cancel()
        self._producers.clear()
