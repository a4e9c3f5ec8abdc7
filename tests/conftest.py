"""Pytest fixtures for the selection sync tests."""

import asyncio

import pytest

from src.database.postgres import InMemorySelectionStore
from src.error_handler import ErrorReporter
from src.integrations.contracts.catalog import Catalog, CatalogProvider


RECIPES = {
    "A": {"title": "Alpha", "images": [{"url": "s1", "alt": "first"}, {"url": "s2", "alt": "second"}]},
    "B": {"title": "Beta", "images": [{"url": "s3"}]},
    "C": {"title": "Gamma", "images": [{"url": "s4"}, {"url": "null"}, None]},
}


class StaticCatalogProvider(CatalogProvider):
    def __init__(self, catalog):
        self.catalog = catalog
        self.loads = 0

    async def load(self):
        self.loads += 1
        return self.catalog


@pytest.fixture
def recipes():
    return {name: dict(data) for name, data in RECIPES.items()}


@pytest.fixture
def catalog(recipes):
    return Catalog.from_mapping(recipes)


@pytest.fixture
def store():
    """In-memory selection store with echo of local writes."""
    return InMemorySelectionStore()


@pytest.fixture
def reporter():
    return ErrorReporter()


@pytest.fixture
def catalog_provider(catalog):
    return StaticCatalogProvider(catalog)


@pytest.fixture
def settle():
    """Let background tasks (push pump, worker, upserts) run until quiet."""

    async def _settle(engine=None, rounds: int = 10):
        for _ in range(rounds):
            if engine is not None:
                await engine.flush()
            await asyncio.sleep(0)

    return _settle
