"""
Collaborator wiring: catalog provider, selection store and the engine handle.

The engine is owned by the FastAPI app (``app.state.engine``) and handed to
route handlers through ``get_engine``; nothing here is a module-level singleton.
"""

import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import HTTPException, Request, status

from src.integrations.contracts.catalog import CatalogProvider
from src.integrations.contracts.selection import SelectionStore
from src.sync.engine import ReconciliationEngine
from src.utils.config_loader import SyncConfig

logger = logging.getLogger(__name__)


def build_catalog_provider(config: SyncConfig, base_dir: Optional[Path] = None) -> CatalogProvider:
    """Use the HTTP catalog when configured, else the local catalog file."""
    if config.catalog.source == "http":
        from src.integrations.clients.real_http.catalog import HttpCatalogProvider

        return HttpCatalogProvider(
            url=config.catalog.url,
            schema=config.catalog.catalog_schema(),
            timeout_seconds=config.catalog.timeout_seconds,
        )

    from src.integrations.clients.mocks.local_catalog import LocalCatalogProvider

    return LocalCatalogProvider(config.catalog.resolved_path(base_dir), schema=config.catalog.catalog_schema())


def build_store(config: SyncConfig) -> SelectionStore:
    """Use the real Postgres store when configured, else the in-memory stub."""
    if config.store.backend == "postgres":
        url = os.getenv(config.store.database_url_env)
        if not url:
            raise RuntimeError(f"{config.store.database_url_env} must be set for the postgres selection store")

        from src.database.postgres_real import PostgresSelectionStore

        return PostgresSelectionStore(
            connection_string=url,
            channel=config.store.channel,
            pool_size=config.store.pool_size,
            max_overflow=config.store.max_overflow,
        )

    from src.database.postgres import InMemorySelectionStore

    logger.warning("Using the in-memory selection store; selections are not persisted")
    return InMemorySelectionStore()


def get_engine(request: Request) -> ReconciliationEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Selection engine is not running")
    return engine
