"""
FastAPI application - Main entry point
"""

from dotenv import load_dotenv

load_dotenv()

import logging
from collections import Counter
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.dependencies import build_catalog_provider, build_store
from src.api.selection_router import router as selection_router
from src.error_handler import ErrorReporter
from src.integrations.contracts.catalog import CatalogProvider
from src.integrations.contracts.selection import SelectionStore
from src.sync.engine import ReconciliationEngine
from src.utils.config_loader import SyncConfig, load_sync_config

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[SyncConfig] = None,
    *,
    store: Optional[SelectionStore] = None,
    catalog_provider: Optional[CatalogProvider] = None,
) -> FastAPI:
    config = config or load_sync_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        provider = catalog_provider or build_catalog_provider(config)
        # CatalogLoadError propagates: the service cannot start without a catalog
        catalog = await provider.load()
        selection_store = store or build_store(config)
        reporter = ErrorReporter(max_history=config.error_history)
        error_counts = Counter()
        reporter.add_listener(lambda entry: error_counts.update([entry.kind]))
        app.state.error_counts = error_counts
        engine = ReconciliationEngine(catalog, selection_store, reporter)
        await engine.start()
        app.state.engine = engine
        logger.info("Selection engine started (items=%d, live=%s)", len(catalog), engine.live)
        try:
            yield
        finally:
            app.state.engine = None
            await engine.close()
            await selection_store.close()

    app = FastAPI(
        title="Recipe Selection Sync API",
        description="Keeps a recipe/image selection in sync with a shared store and exports it",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.engine = None
    app.state.error_counts = Counter()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(selection_router, prefix="/api/v1", tags=["Selection"])

    @app.get("/", tags=["Health"])
    async def root():
        """Health check endpoint."""
        return {"service": "Recipe Selection Sync API", "status": "healthy", "version": "1.0.0", "timestamp": datetime.now().isoformat()}

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Detailed health check (engine seeded, push channel live, reported errors by kind)."""
        engine = app.state.engine
        return {
            "status": "healthy" if engine is not None else "starting",
            "selection": {
                "seeded": bool(engine and engine.seeded),
                "live": bool(engine and engine.live),
            },
            "errors": dict(app.state.error_counts),
            "timestamp": datetime.now().isoformat(),
        }

    return app


_config = load_sync_config()

# Setup logging
logging.basicConfig(level=_config.logging.level, format=_config.logging.format)

app = create_app(_config)
