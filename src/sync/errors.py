"""
Error taxonomy for the selection sync engine.

Store-boundary errors (seed, upsert, subscription, malformed events) are
reported through src.error_handler.ErrorReporter and never escape the
reconciliation boundary. Local-intent errors (unknown item, no active item)
are raised to the caller so the HTTP layer can map them to 404 / 409.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SelectionSyncError(Exception):
    """Base class for every error raised or reported by the sync engine."""

    recoverable: bool = True

    def __init__(self, message: str, *, item_id: Optional[str] = None, payload: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.item_id = item_id
        self.payload = payload or {}


class CatalogLoadError(SelectionSyncError):
    """The catalog could not be loaded. Fatal to startup."""

    recoverable = False


class SeedReadError(SelectionSyncError):
    """The startup read of the selection store failed; state starts empty."""


class UpsertError(SelectionSyncError):
    """An upsert was rejected by the store; the optimistic local value is kept."""


class SubscriptionError(SelectionSyncError):
    """The push channel could not be opened or dropped; sync degrades to seed-only."""


class MalformedEventError(SelectionSyncError):
    """A change event referenced an unknown item or carried an invalid payload."""


class UnknownItemError(SelectionSyncError, KeyError):
    """A local action named an item that is not in the catalog."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""


class NoActiveItemError(SelectionSyncError):
    """A sub-item action was issued while no item is open."""
