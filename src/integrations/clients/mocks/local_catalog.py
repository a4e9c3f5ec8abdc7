"""
Local Catalog Client.

Purpose:
- Loads the item catalog (recipes.json) from a local file once at startup.
- Does NOT make network calls.

Usage:
- Wired in src/api/dependencies.py when ``catalog.source`` is ``file``
- Used by scripts/run_export.py

Swap:
Replace with clients/real_http/catalog.py when the catalog is only reachable
over HTTP.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Union

from src.integrations.contracts.catalog import Catalog, CatalogProvider, CatalogSchema
from src.sync.errors import CatalogLoadError

logger = logging.getLogger(__name__)


class LocalCatalogProvider(CatalogProvider):
    def __init__(self, path: Union[str, Path], schema: Optional[CatalogSchema] = None) -> None:
        self.path = Path(path)
        self.schema = schema or CatalogSchema()

    async def load(self) -> Catalog:
        if not self.path.exists():
            raise CatalogLoadError(f"Catalog file not found: {self.path}")
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise CatalogLoadError(f"Failed to read catalog {self.path}: {exc}") from exc

        catalog = Catalog.from_mapping(raw, self.schema)
        logger.info("Loaded %d catalog item(s) from %s", len(catalog), self.path)
        return catalog
