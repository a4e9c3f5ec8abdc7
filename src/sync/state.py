"""
In-memory selection state.

Holds ``checked_by_item`` (item_id -> bool) and the flat aggregate of selected
sub-item references. The aggregate is not partitioned by item: two items that
share a reference cannot be told apart once merged.

Only the reconciliation engine's worker mutates a SelectionState.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, Optional

from src.integrations.contracts.catalog import drop_absent
from src.integrations.contracts.selection import SelectionRecord


@dataclass(frozen=True)
class SelectionSnapshot:
    checked_by_item: Dict[str, bool] = field(default_factory=dict)
    selected_subitems: FrozenSet[str] = frozenset()

    def is_checked(self, item_id: str) -> bool:
        return bool(self.checked_by_item.get(item_id, False))

    def to_dict(self) -> Dict[str, object]:
        return {
            "checked_by_item": dict(self.checked_by_item),
            "selected_subitems": sorted(self.selected_subitems),
        }


class SelectionState:
    def __init__(self) -> None:
        self._checked: Dict[str, bool] = {}
        # dict keeps insertion order, values unused
        self._selected: Dict[str, None] = {}

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    def snapshot(self) -> SelectionSnapshot:
        return SelectionSnapshot(
            checked_by_item=dict(self._checked),
            selected_subitems=frozenset(self._selected),
        )

    def is_checked(self, item_id: str) -> Optional[bool]:
        return self._checked.get(item_id)

    def selected_among(self, refs: Iterable[str]) -> list:
        """Return the members of ``refs`` that are in the aggregate, in the order given."""
        return [r for r in refs if r in self._selected]

    def selected_except(self, refs: Iterable[str]) -> list:
        """Return the aggregate in insertion order without ``refs``."""
        excluded = set(refs)
        return [r for r in self._selected if r not in excluded]

    # ------------------------------------------------------------------ #
    # Optimistic local mutations
    # ------------------------------------------------------------------ #
    def set_checked(self, item_id: str, checked: bool) -> None:
        self._checked[item_id] = bool(checked)

    def set_selected_subitems(self, subset: Iterable[str]) -> None:
        self._selected = dict.fromkeys(drop_absent(subset))

    def add_subitems(self, refs: Iterable[str]) -> None:
        for ref in drop_absent(refs):
            self._selected.setdefault(ref, None)

    def remove_subitems(self, refs: Iterable[str]) -> None:
        for ref in refs:
            self._selected.pop(ref, None)

    # ------------------------------------------------------------------ #
    # Remote merges
    # ------------------------------------------------------------------ #
    def apply_record(self, record: SelectionRecord, owned_refs: Iterable[str]) -> None:
        """Overwrite one item's fields from a store record or insert/update event."""
        self._checked[record.item_id] = bool(record.is_checked)
        self.remove_subitems(owned_refs)
        self.add_subitems(record.selected_subitems)

    def remove_item(self, item_id: str, owned_refs: Iterable[str]) -> None:
        """Apply a delete event: forget the flag and every reference the item owns."""
        self._checked.pop(item_id, None)
        self.remove_subitems(owned_refs)

    def reset(self) -> None:
        self._checked.clear()
        self._selected.clear()
