"""
Reconciliation engine: the single writer of SelectionState.

Every mutation is a command on one asyncio.Queue processed by one worker
task, so a command runs to completion before the next one starts. Three
channels feed the queue:

- SEED: the one-time full read of the selection store at startup
- PUSH: change notifications from the store's push channel
- LOCAL: user intent (check an item, open/close an item, pick sub-items)

A reconciliation pass drains every queued command and applies them ordered
by channel (SEED, PUSH, LOCAL), so on conflicting same-item updates within
one pass local intent wins. Arrival order is kept within a channel.

Push notifications received before the seed has been applied are buffered
and replayed right after it.

Local intent is applied optimistically and upserted fire-and-forget. Store
failures are reported to the ErrorReporter and never roll back local state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import IntEnum
from functools import partial
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from src.error_handler import ErrorReporter
from src.integrations.contracts.catalog import Catalog, drop_absent
from src.integrations.contracts.selection import (
    ChangeEvent,
    ChangeOp,
    SelectionRecord,
    SelectionStore,
    Subscription,
    event_from_notification,
)
from src.sync.errors import (
    MalformedEventError,
    NoActiveItemError,
    SeedReadError,
    SubscriptionError,
    UnknownItemError,
    UpsertError,
)
from src.sync.export import project
from src.sync.state import SelectionSnapshot, SelectionState

logger = logging.getLogger(__name__)


class Channel(IntEnum):
    SEED = 0
    PUSH = 1
    LOCAL = 2


@dataclass
class _Command:
    channel: Channel
    apply: Callable[[], Any]
    done: Optional[asyncio.Future] = None


@dataclass(frozen=True)
class ActiveItemView:
    item_id: str
    subitems: List[str]
    selected: List[str]
    is_checked: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "subitems": list(self.subitems),
            "selected": list(self.selected),
            "is_checked": self.is_checked,
        }


class ReconciliationEngine:
    def __init__(
        self,
        catalog: Catalog,
        store: SelectionStore,
        reporter: Optional[ErrorReporter] = None,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.reporter = reporter or ErrorReporter()
        self.state = SelectionState()

        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self._pump: Optional[asyncio.Task] = None
        self._subscription: Optional[Subscription] = None
        self._upserts: Set[asyncio.Task] = set()
        self._upsert_tails: Dict[str, asyncio.Task] = {}
        self._unacknowledged: Dict[str, int] = {}
        self._buffered: List[ChangeEvent] = []
        self._active_item: Optional[str] = None
        self._seeded = False
        self._reseeding = False
        self._closed = False
        self._subscribe_lock = asyncio.Lock()
        self.live = False

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #
    async def start(self) -> None:
        """Start the worker, open the push channel, then seed from the store."""
        if self._worker is not None:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.create_task(self._run(), name="selection-reconciler")
        await self._open_subscription()
        await self._seed()

    async def close(self) -> None:
        """Release the push channel and let in-flight upserts finish."""
        if self._closed:
            return
        self._closed = True
        async with self._subscribe_lock:
            await self._close_subscription()
        if self._queue is not None:
            await self._queue.join()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        if self._upserts:
            await asyncio.gather(*list(self._upserts), return_exceptions=True)
        logger.info("Reconciliation engine closed")

    async def resubscribe(self, reseed: bool = False) -> bool:
        """
        Reopen the push channel after a failure; optionally re-read the store.

        With ``reseed`` every push event from the new channel is buffered
        until the re-read has been applied and then replayed on top of it.
        Items missing from the re-read are dropped unless a local upsert for
        them is still unacknowledged.
        """
        async with self._subscribe_lock:
            if self._closed:
                return False
            if self.live:
                return True
            if reseed:
                self._reseeding = True
            opened = await self._subscribe_locked()
        if not reseed:
            return opened
        records = await self._read_records() if opened else None
        if self._closed:
            return opened
        await self._submit(Channel.SEED, partial(self._apply_reseed, records))
        return opened

    async def wait_idle(self) -> None:
        """Wait until every queued command has been applied."""
        if self._queue is not None:
            await self._queue.join()

    async def flush(self) -> None:
        """Wait until queued commands are applied and in-flight upserts have completed."""
        await self.wait_idle()
        if self._upserts:
            await asyncio.gather(*list(self._upserts), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    @property
    def seeded(self) -> bool:
        return self._seeded

    @property
    def active_item(self) -> Optional[str]:
        return self._active_item

    def snapshot(self) -> SelectionSnapshot:
        return self.state.snapshot()

    def unacknowledged(self) -> List[str]:
        """Items with at least one upsert the store has not acknowledged yet."""
        return sorted(item_id for item_id, count in self._unacknowledged.items() if count > 0)

    def active_view(self) -> Optional[ActiveItemView]:
        if self._active_item is None:
            return None
        refs = self.catalog.subitems_of(self._active_item)
        return ActiveItemView(
            item_id=self._active_item,
            subitems=list(refs),
            selected=self.state.selected_among(refs),
            is_checked=bool(self.state.is_checked(self._active_item)),
        )

    def export(self) -> Dict[str, Dict[str, Any]]:
        snap = self.snapshot()
        return project(self.catalog, snap.checked_by_item, snap.selected_subitems)

    # ------------------------------------------------------------------ #
    # Local user intent
    # ------------------------------------------------------------------ #
    async def check_item(self, item_id: str, checked: bool) -> SelectionSnapshot:
        self._require_item(item_id)
        return await self._submit(Channel.LOCAL, partial(self._apply_check, item_id, bool(checked)))

    async def open_item(self, item_id: str) -> ActiveItemView:
        self._require_item(item_id)
        return await self._submit(Channel.LOCAL, partial(self._apply_open, item_id))

    async def close_item(self) -> SelectionSnapshot:
        return await self._submit(Channel.LOCAL, self._apply_close)

    async def toggle_subitem(self, ref: str) -> ActiveItemView:
        return await self._submit(Channel.LOCAL, partial(self._apply_toggle, ref))

    async def select_subitems(self, refs: Iterable[str]) -> ActiveItemView:
        return await self._submit(Channel.LOCAL, partial(self._apply_select, list(refs)))

    def _require_item(self, item_id: str) -> None:
        if item_id not in self.catalog:
            raise UnknownItemError(f"Unknown item '{item_id}'", item_id=item_id)

    def _apply_check(self, item_id: str, checked: bool) -> SelectionSnapshot:
        refs = self.catalog.subitems_of(item_id)
        self.state.set_checked(item_id, checked)
        if checked:
            self.state.add_subitems(refs)
        else:
            self.state.remove_subitems(refs)
        self._schedule_upsert(
            SelectionRecord(item_id=item_id, is_checked=checked, selected_subitems=self.state.selected_among(refs))
        )
        return self.state.snapshot()

    def _apply_open(self, item_id: str) -> ActiveItemView:
        self._active_item = item_id
        return self.active_view()

    def _apply_close(self) -> SelectionSnapshot:
        item_id = self._active_item
        if item_id is not None:
            refs = self.catalog.subitems_of(item_id)
            self._schedule_upsert(
                SelectionRecord(
                    item_id=item_id,
                    is_checked=bool(self.state.is_checked(item_id)),
                    selected_subitems=self.state.selected_among(refs),
                )
            )
            self._active_item = None
        return self.state.snapshot()

    def _apply_toggle(self, ref: str) -> ActiveItemView:
        item_id = self._current_item()
        refs = self.catalog.subitems_of(item_id)
        if ref not in refs:
            raise UnknownItemError(f"'{ref}' is not a sub-item of '{item_id}'", item_id=item_id)
        chosen = set(self.state.selected_among(refs))
        chosen.symmetric_difference_update({ref})
        return self._apply_subitem_selection(item_id, chosen)

    def _apply_select(self, refs: List[str]) -> ActiveItemView:
        item_id = self._current_item()
        owned = self.catalog.subitems_of(item_id)
        chosen = set(drop_absent(refs))
        foreign = chosen.difference(owned)
        if foreign:
            raise UnknownItemError(
                f"Not sub-items of '{item_id}': {', '.join(sorted(foreign))}",
                item_id=item_id,
            )
        return self._apply_subitem_selection(item_id, chosen)

    def _apply_subitem_selection(self, item_id: str, chosen: Set[str]) -> ActiveItemView:
        """
        Combined transition for sub-item picks inside the open item.

        Rule: selecting any sub-item implies the owning item is checked. The
        item's flag is set and upserted as true together with its sub-items,
        also when the pick leaves it with none.
        """
        owned = self.catalog.subitems_of(item_id)
        selected = [r for r in owned if r in chosen]
        self.state.set_selected_subitems(self.state.selected_except(owned) + selected)
        self.state.set_checked(item_id, True)
        self._schedule_upsert(SelectionRecord(item_id=item_id, is_checked=True, selected_subitems=selected))
        return self.active_view()

    def _current_item(self) -> str:
        if self._active_item is None:
            raise NoActiveItemError("No item is open")
        return self._active_item

    # ------------------------------------------------------------------ #
    # Upserts
    # ------------------------------------------------------------------ #
    def _schedule_upsert(self, record: SelectionRecord) -> None:
        """Upserts for the same item run one after another, in the order they were scheduled."""
        self._unacknowledged[record.item_id] = self._unacknowledged.get(record.item_id, 0) + 1
        previous = self._upsert_tails.get(record.item_id)
        task = asyncio.get_running_loop().create_task(self._upsert(record, previous))
        self._upserts.add(task)
        self._upsert_tails[record.item_id] = task
        task.add_done_callback(partial(self._upsert_done, record.item_id))

    def _upsert_done(self, item_id: str, task: asyncio.Task) -> None:
        self._upserts.discard(task)
        if self._upsert_tails.get(item_id) is task:
            del self._upsert_tails[item_id]

    async def _upsert(self, record: SelectionRecord, previous: Optional[asyncio.Task] = None) -> None:
        if previous is not None:
            await asyncio.wait({previous})
        try:
            stored = await self.store.upsert(record)
            logger.debug("Upsert acknowledged for %s: %s", record.item_id, stored)
        except Exception as exc:
            error = UpsertError(f"Failed to upsert selection for '{record.item_id}': {exc}", item_id=record.item_id, payload=record.to_dict())
            error.__cause__ = exc
            self.reporter.report(error, context={"record": record.to_dict()})
        finally:
            remaining = self._unacknowledged.get(record.item_id, 1) - 1
            if remaining > 0:
                self._unacknowledged[record.item_id] = remaining
            else:
                self._unacknowledged.pop(record.item_id, None)

    # ------------------------------------------------------------------ #
    # Seed
    # ------------------------------------------------------------------ #
    async def _seed(self) -> None:
        records = await self._read_records()
        await self._submit(Channel.SEED, partial(self._apply_seed, records or []))

    async def _read_records(self) -> Optional[List[SelectionRecord]]:
        try:
            return list(await self.store.read_all())
        except Exception as exc:
            error = SeedReadError(f"Failed to read selection store: {exc}")
            error.__cause__ = exc
            self.reporter.report(error)
            return None

    def _apply_seed(self, records: List[SelectionRecord]) -> SelectionSnapshot:
        self.state.reset()
        self._apply_records(records)
        self._seeded = True
        self._replay_buffered()
        logger.info("Seeded selection state from %d record(s)", len(records))
        return self.state.snapshot()

    def _apply_reseed(self, records: Optional[List[SelectionRecord]]) -> SelectionSnapshot:
        if records is not None:
            stored = {record.item_id for record in records}
            for item_id in list(self.state.snapshot().checked_by_item):
                if item_id in stored or self._unacknowledged.get(item_id):
                    continue
                self.state.remove_item(item_id, self.catalog.subitems_of(item_id))
            self._apply_records(records)
            logger.info("Reseeded selection state from %d record(s)", len(records))
        self._reseeding = False
        self._replay_buffered()
        return self.state.snapshot()

    def _replay_buffered(self) -> None:
        buffered, self._buffered = self._buffered, []
        if buffered:
            logger.info("Replaying %d change event(s) received during seed", len(buffered))
        for event in buffered:
            self._apply_event(event)

    def _apply_records(self, records: Iterable[SelectionRecord]) -> SelectionSnapshot:
        for record in records:
            if record.item_id not in self.catalog:
                logger.info("Ignoring stored selection for unknown item %r", record.item_id)
                continue
            self.state.apply_record(record, self.catalog.subitems_of(record.item_id))
        return self.state.snapshot()

    # ------------------------------------------------------------------ #
    # Push channel
    # ------------------------------------------------------------------ #
    async def _open_subscription(self) -> bool:
        async with self._subscribe_lock:
            if self._closed or self.live:
                return self.live
            return await self._subscribe_locked()

    async def _subscribe_locked(self) -> bool:
        try:
            subscription = await self.store.subscribe()
        except Exception as exc:
            self.live = False
            error = SubscriptionError(f"Failed to subscribe to selection changes: {exc}")
            error.__cause__ = exc
            self.reporter.report(error)
            return False
        self._subscription = subscription
        self.live = True
        self._pump = asyncio.create_task(self._pump_events(subscription), name="selection-push-channel")
        return True

    async def _close_subscription(self) -> None:
        subscription, self._subscription = self._subscription, None
        self.live = False
        if subscription is not None:
            try:
                await subscription.close()
            except Exception as exc:
                logger.warning("Failed to close selection subscription: %s", exc)
        if self._pump is not None:
            self._pump.cancel()
            try:
                await self._pump
            except asyncio.CancelledError:
                pass
            self._pump = None

    async def _pump_events(self, subscription: Subscription) -> None:
        try:
            async for raw in subscription:
                try:
                    event = event_from_notification(raw)
                except MalformedEventError as exc:
                    self.reporter.report(exc)
                    continue
                await self._queue.put(_Command(Channel.PUSH, partial(self._apply_event, event)))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = SubscriptionError(f"Selection push channel failed: {exc}")
            error.__cause__ = exc
            self.reporter.report(error)
        finally:
            if self._subscription is subscription:
                self._subscription = None
                self.live = False
                logger.info("Selection push channel stopped; running seed-only until resubscribed")

    def _apply_event(self, event: ChangeEvent) -> None:
        if not self._seeded or self._reseeding:
            self._buffered.append(event)
            return
        item_id = event.record.item_id
        if item_id not in self.catalog:
            self.reporter.report(
                MalformedEventError(f"Change event for unknown item '{item_id}'", item_id=item_id, payload=event.record.to_dict())
            )
            return
        refs = self.catalog.subitems_of(item_id)
        if event.op is ChangeOp.DELETE:
            self.state.remove_item(item_id, refs)
        else:
            self.state.apply_record(event.record, refs)
        logger.debug("Applied %s event for %s", event.op.value, item_id)

    # ------------------------------------------------------------------ #
    # Worker
    # ------------------------------------------------------------------ #
    async def _submit(self, channel: Channel, apply: Callable[[], Any]) -> Any:
        if self._queue is None or self._closed:
            raise RuntimeError("Reconciliation engine is not running")
        done = asyncio.get_running_loop().create_future()
        await self._queue.put(_Command(channel, apply, done))
        return await done

    async def _run(self) -> None:
        while True:
            batch = [await self._queue.get()]
            while True:
                try:
                    batch.append(self._queue.get_nowait())
                except asyncio.QueueEmpty:
                    break
            batch.sort(key=lambda command: command.channel)
            for command in batch:
                self._execute(command)

    def _execute(self, command: _Command) -> None:
        try:
            result = command.apply()
        except Exception as exc:
            if command.done is not None and not command.done.done():
                command.done.set_exception(exc)
            else:
                logger.exception("Failed to apply %s command", command.channel.name)
        else:
            if command.done is not None and not command.done.done():
                command.done.set_result(result)
        finally:
            self._queue.task_done()
