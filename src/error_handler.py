"""Error reporting for the selection sync engine."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

from src.sync.errors import SelectionSyncError

logger = logging.getLogger(__name__)


@dataclass
class ReportedError:
    kind: str
    message: str
    item_id: Optional[str] = None
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "item_id": self.item_id,
            "recoverable": self.recoverable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class ErrorReporter:
    """
    Collects store-boundary errors for the surrounding collaborator.

    Errors are logged, kept in a bounded history (newest last) and forwarded
    to any registered listener. A failing listener is logged and skipped.
    """

    def __init__(self, max_history: int = 100) -> None:
        self._history: Deque[ReportedError] = deque(maxlen=max_history)
        self._listeners: List[Callable[[ReportedError], None]] = []

    def add_listener(self, listener: Callable[[ReportedError], None]) -> None:
        self._listeners.append(listener)

    def report(self, exc: Exception, context: Optional[Dict[str, Any]] = None) -> ReportedError:
        if isinstance(exc, SelectionSyncError):
            entry = ReportedError(
                kind=type(exc).__name__,
                message=str(exc),
                item_id=exc.item_id,
                recoverable=exc.recoverable,
                context=context or {},
            )
        else:
            entry = ReportedError(kind=type(exc).__name__, message=str(exc), context=context or {})

        if entry.recoverable:
            logger.warning("%s: %s", entry.kind, entry.message)
        else:
            logger.error("%s: %s", entry.kind, entry.message, exc_info=exc)

        self._history.append(entry)
        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception as listener_exc:  # pragma: no cover
                logger.warning("Error listener %r failed: %s", listener, listener_exc)
        return entry

    def recent(self, limit: Optional[int] = None) -> List[ReportedError]:
        entries = list(self._history)
        return entries[-limit:] if limit else entries

    def clear(self) -> None:
        self._history.clear()
