"""
Integrations layer.
This package contains all code used to communicate with external systems such as:
- The recipe catalog (local recipes.json or an HTTP endpoint)
- The shared selection store (Postgres table + NOTIFY push channel)

Key rule:
- The sync engine MUST NOT talk to a catalog source or database directly.
- It depends on the contracts here (CatalogProvider, SelectionStore).
- We use MOCK clients during development and swap to REAL_HTTP / Postgres clients when available.

Switching implementations:
- The selection of mock vs real clients happens in ONE place (src/api/dependencies.py).
"""

from .contracts.catalog import (
    ABSENT_SUBITEM,
    Catalog,
    CatalogProvider,
    CatalogSchema,
    Item,
    drop_absent,
    is_absent,
)
from .contracts.selection import (
    ChangeEvent,
    ChangeOp,
    SelectionRecord,
    SelectionStore,
    Subscription,
    event_from_notification,
    record_from_row,
)

__all__ = [
    # catalog
    "ABSENT_SUBITEM", "Catalog", "CatalogProvider", "CatalogSchema", "Item",
    "drop_absent", "is_absent",
    # selection store
    "ChangeEvent", "ChangeOp", "SelectionRecord", "SelectionStore", "Subscription",
    "event_from_notification", "record_from_row",
]
