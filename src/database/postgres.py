"""
Lightweight in-memory selection store for local development and tests.

Implements the SelectionStore contract without a database: upserts are kept in
a dict keyed by item_id and every change is published to open subscriptions in
the same ``{"op": ..., "record": {...}}`` shape the Postgres trigger uses, so a
client also receives the echo of its own writes. It is NOT intended for
production use.
"""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, Iterable, List, Optional, Set

from src.integrations.contracts.selection import (
    ChangeOp,
    SelectionRecord,
    SelectionStore,
    Subscription,
)

_CLOSED = object()


class QueueSubscription(Subscription):
    def __init__(self, store: "InMemorySelectionStore") -> None:
        self._store = store
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def deliver(self, payload: Any) -> None:
        if not self._closed:
            self._queue.put_nowait(payload)

    def fail(self, exc: Exception) -> None:
        if not self._closed:
            self._queue.put_nowait(exc)

    async def __anext__(self) -> Dict[str, Any]:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, Exception):
            self._closed = True
            self._store._subscribers.discard(self)
            raise item
        return item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._store._subscribers.discard(self)
        self._queue.put_nowait(_CLOSED)


class InMemorySelectionStore(SelectionStore):
    """
    In-memory stand-in for the Postgres-backed selection store.

    ``delete`` and ``publish`` simulate writes made by other clients.
    """

    def __init__(self, records: Optional[Iterable[SelectionRecord]] = None) -> None:
        self._records: Dict[str, SelectionRecord] = {}
        self._subscribers: Set[QueueSubscription] = set()
        for record in records or []:
            self._records[record.item_id] = copy.deepcopy(record)

    # ------------------------------------------------------------------ #
    # SelectionStore
    # ------------------------------------------------------------------ #
    async def read_all(self) -> List[SelectionRecord]:
        return [copy.deepcopy(r) for r in self._records.values()]

    async def upsert(self, record: SelectionRecord) -> SelectionRecord:
        op = ChangeOp.UPDATE if record.item_id in self._records else ChangeOp.INSERT
        stored = copy.deepcopy(record)
        self._records[record.item_id] = stored
        self.publish({"op": op.value, "record": stored.to_dict()})
        return copy.deepcopy(stored)

    async def subscribe(self) -> Subscription:
        subscription = QueueSubscription(self)
        self._subscribers.add(subscription)
        return subscription

    # ------------------------------------------------------------------ #
    # Helpers for out-of-band changes
    # ------------------------------------------------------------------ #
    def get(self, item_id: str) -> Optional[SelectionRecord]:
        record = self._records.get(item_id)
        return copy.deepcopy(record) if record else None

    async def delete(self, item_id: str) -> bool:
        record = self._records.pop(item_id, None)
        if record is None:
            return False
        self.publish({"op": ChangeOp.DELETE.value, "record": record.to_dict()})
        return True

    def publish(self, payload: Any) -> None:
        for subscription in list(self._subscribers):
            subscription.deliver(payload)

    def fail_subscriptions(self, exc: Exception) -> None:
        """Break every open push channel with ``exc``."""
        for subscription in list(self._subscribers):
            subscription.fail(exc)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
