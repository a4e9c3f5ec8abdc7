"""
Catalog contract: items and their ordered sub-item references.

The catalog is a JSON object keyed by item id (recipe name). Each item is a
free-form object whose sub-item list lives under ``CatalogSchema.subitems_field``
(``images`` by default). A list entry is either a plain reference string or an
object carrying the reference under ``CatalogSchema.ref_key`` (``url``).

Entries whose reference is ``None`` or the literal string ``"null"`` are the
absent sentinel and never take part in a selection.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from src.sync.errors import CatalogLoadError

ABSENT_SUBITEM = "null"


def is_absent(ref: Any) -> bool:
    return ref is None or ref == ABSENT_SUBITEM


def drop_absent(refs: Iterable[Any]) -> List[str]:
    """Return the references in order with the absent sentinel (and non-strings) removed."""
    return [r for r in refs if isinstance(r, str) and not is_absent(r)]


@dataclass(frozen=True)
class CatalogSchema:
    subitems_field: str = "images"
    ref_key: str = "url"

    def ref_of(self, entry: Any) -> Optional[str]:
        value = entry.get(self.ref_key) if isinstance(entry, Mapping) else entry
        if not isinstance(value, str) or is_absent(value):
            return None
        return value


@dataclass(frozen=True)
class Item:
    item_id: str
    subitems: Tuple[str, ...]
    data: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class Catalog(Mapping[str, Item]):
    """Immutable item_id -> Item mapping, built once by a catalog provider."""

    def __init__(self, items: Mapping[str, Item], schema: Optional[CatalogSchema] = None) -> None:
        self._items: Dict[str, Item] = dict(items)
        self.schema = schema or CatalogSchema()

    @classmethod
    def from_mapping(cls, raw: Any, schema: Optional[CatalogSchema] = None) -> "Catalog":
        schema = schema or CatalogSchema()
        if not isinstance(raw, Mapping):
            raise CatalogLoadError(f"Catalog must be a JSON object keyed by item id, got {type(raw).__name__}")

        items: Dict[str, Item] = {}
        for item_id, data in raw.items():
            if not isinstance(data, Mapping):
                raise CatalogLoadError(f"Catalog entry '{item_id}' is not an object", item_id=str(item_id))
            entries = data.get(schema.subitems_field) or []
            if not isinstance(entries, list):
                raise CatalogLoadError(
                    f"Catalog entry '{item_id}' has a non-list '{schema.subitems_field}' field",
                    item_id=str(item_id),
                )
            refs: List[str] = []
            for entry in entries:
                ref = schema.ref_of(entry)
                if ref is not None and ref not in refs:
                    refs.append(ref)
            items[str(item_id)] = Item(item_id=str(item_id), subitems=tuple(refs), data=dict(data))
        return cls(items, schema)

    def __getitem__(self, item_id: str) -> Item:
        return self._items[item_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def subitems_of(self, item_id: str) -> Tuple[str, ...]:
        item = self._items.get(item_id)
        return item.subitems if item else ()


class CatalogProvider(ABC):
    """Every catalog source must implement this interface."""

    @abstractmethod
    async def load(self) -> Catalog:
        """Load the catalog once; raise CatalogLoadError on failure."""
