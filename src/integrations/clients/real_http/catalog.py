"""
HTTP Catalog Client.

Fetches the static catalog document (e.g. ``https://host/recipes.json``) once at
startup and normalizes it into the Catalog contract.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx

from src.integrations.contracts.catalog import Catalog, CatalogProvider, CatalogSchema
from src.sync.errors import CatalogLoadError

logger = logging.getLogger(__name__)


class HttpCatalogProvider(CatalogProvider):
    def __init__(
        self,
        url: str,
        schema: Optional[CatalogSchema] = None,
        timeout_seconds: float = 20.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not url:
            raise ValueError("Catalog URL is not configured.")
        self.url = url
        self.schema = schema or CatalogSchema()
        self.timeout_seconds = timeout_seconds
        self.headers = headers or {"Accept": "application/json"}
        self._transport = transport

    async def load(self) -> Catalog:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.get(self.url, headers=self.headers)
                response.raise_for_status()
                raw = response.json()
        except httpx.HTTPError as exc:
            raise CatalogLoadError(f"Failed to fetch catalog from {self.url}: {exc}") from exc
        except ValueError as exc:
            raise CatalogLoadError(f"Catalog at {self.url} is not valid JSON: {exc}") from exc

        catalog = Catalog.from_mapping(raw, self.schema)
        logger.info("Loaded %d catalog item(s) from %s", len(catalog), self.url)
        return catalog
