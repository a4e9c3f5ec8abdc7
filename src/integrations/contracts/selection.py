"""
Selection store contract: records, change events and the store interface.

A SelectionRecord is one row of the ``checked_states`` table. The store is
addressed by ``item_id`` (the natural key) and upserts with that key as the
conflict target. Change events arrive on a push channel as raw JSON objects
and are normalized here before they reach the engine.

Accepted notification shapes:
- ``{"op": "update", "record": {...}}`` (our Postgres trigger)
- ``{"eventType": "UPDATE", "new": {...}, "old": {...}}`` (Supabase realtime)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ValidationError, field_validator

from src.integrations.contracts.catalog import drop_absent
from src.sync.errors import MalformedEventError


class ChangeOp(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class SelectionRecord:
    item_id: str
    is_checked: bool = False
    selected_subitems: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "is_checked": self.is_checked,
            "selected_subitems": list(self.selected_subitems),
        }


@dataclass
class ChangeEvent:
    op: ChangeOp
    record: SelectionRecord


# ---------------------------------------------------------------------------
# Store interface
# ---------------------------------------------------------------------------

class Subscription(ABC):
    """
    Cancellable async stream of raw change notifications.

    Items are the JSON objects published on the push channel; the engine
    normalizes them with event_from_notification so malformed payloads are
    reported in one place.
    """

    def __aiter__(self) -> "Subscription":
        return self

    @abstractmethod
    async def __anext__(self) -> Dict[str, Any]:
        """Wait for the next notification; raise StopAsyncIteration once closed."""

    @abstractmethod
    async def close(self) -> None:
        """Stop delivery and release the underlying channel."""


class SelectionStore(ABC):
    """Every remote selection store must implement this interface."""

    @abstractmethod
    async def read_all(self) -> List[SelectionRecord]:
        """Return every stored record (startup seed)."""

    @abstractmethod
    async def upsert(self, record: SelectionRecord) -> SelectionRecord:
        """Insert or replace the record for ``record.item_id``."""

    @abstractmethod
    async def subscribe(self) -> Subscription:
        """Open the push channel for the selection table."""

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Payload normalization
# ---------------------------------------------------------------------------

class SelectionRecordPayload(BaseModel):
    item_id: str
    is_checked: bool = False
    selected_subitems: Optional[List[Optional[str]]] = None

    @field_validator("item_id")
    @classmethod
    def _non_empty_key(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("item_id must not be empty")
        return value


_OP_KEYS = ("op", "type", "eventType")
_RECORD_KEYS = ("record", "new")
_OLD_RECORD_KEYS = ("old_record", "old", "record")


def record_from_row(row: Mapping[str, Any]) -> SelectionRecord:
    """
    Lenient conversion used for seed rows.

    A row whose ``selected_subitems`` is not a list keeps its checked flag and
    contributes no sub-items.
    """
    subitems = row.get("selected_subitems")
    return SelectionRecord(
        item_id=str(row.get("item_id") or ""),
        is_checked=bool(row.get("is_checked")),
        selected_subitems=drop_absent(subitems) if isinstance(subitems, list) else [],
    )


def event_from_notification(raw: Any) -> ChangeEvent:
    """Normalize a raw push notification; raise MalformedEventError when it cannot be used."""
    if not isinstance(raw, Mapping):
        raise MalformedEventError(f"Change event must be an object, got {type(raw).__name__}")

    op_value = _first_present(raw, _OP_KEYS)
    try:
        op = ChangeOp(str(op_value or "").strip().lower())
    except ValueError as exc:
        raise MalformedEventError(f"Unsupported change operation {op_value!r}", payload=dict(raw)) from exc

    keys = _OLD_RECORD_KEYS if op is ChangeOp.DELETE else _RECORD_KEYS
    body = _first_present(raw, keys)
    if not isinstance(body, Mapping) or not body:
        raise MalformedEventError(f"{op.value} event carries no record", payload=dict(raw))

    subitems = body.get("selected_subitems")
    if op is not ChangeOp.DELETE and subitems is not None and not isinstance(subitems, list):
        raise MalformedEventError(
            "selected_subitems must be an array",
            item_id=str(body.get("item_id") or "") or None,
            payload=dict(raw),
        )

    try:
        payload = SelectionRecordPayload(**{k: body[k] for k in ("item_id", "is_checked", "selected_subitems") if k in body and body[k] is not None})
    except ValidationError as exc:
        raise MalformedEventError(f"Change event validation failed: {exc}", payload=dict(raw)) from exc

    return ChangeEvent(
        op=op,
        record=SelectionRecord(
            item_id=payload.item_id,
            is_checked=payload.is_checked,
            selected_subitems=drop_absent(payload.selected_subitems or []),
        ),
    )


def _first_present(data: Mapping[str, Any], keys) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None
