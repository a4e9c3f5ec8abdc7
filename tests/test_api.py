import json

import pytest
from fastapi.testclient import TestClient

from src.api.main import create_app
from src.database.postgres import InMemorySelectionStore
from src.integrations.contracts.catalog import CatalogProvider
from src.integrations.contracts.selection import SelectionRecord
from src.sync.errors import CatalogLoadError
from src.utils.config_loader import SyncConfig


class BrokenCatalogProvider(CatalogProvider):
    async def load(self):
        raise CatalogLoadError("catalog unreachable")


class RejectingStore(InMemorySelectionStore):
    async def upsert(self, record):
        raise RuntimeError("permission denied for table checked_states")


@pytest.fixture
def seeded_store():
    return InMemorySelectionStore([SelectionRecord("C", True, ["s4"])])


@pytest.fixture
def client(catalog_provider, seeded_store):
    app = create_app(SyncConfig(), store=seeded_store, catalog_provider=catalog_provider)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["selection"] == {"seeded": True, "live": True}
    assert body["errors"] == {}


def test_catalog_listing(client):
    body = client.get("/api/v1/catalog").json()
    assert body["count"] == 3
    items = {item["item_id"]: item for item in body["items"]}
    assert items["A"]["subitems"] == ["s1", "s2"]
    assert items["C"]["subitems"] == ["s4"]


def test_selection_starts_from_seed(client):
    body = client.get("/api/v1/selection").json()
    assert body["checked_by_item"] == {"C": True}
    assert body["selected_subitems"] == ["s4"]
    assert body["seeded"] is True
    assert body["active_item"] is None


def test_check_open_toggle_and_export(client, seeded_store):
    body = client.post("/api/v1/items/A/check", json={"checked": True}).json()
    assert body["checked_by_item"]["A"] is True
    assert body["selected_subitems"] == ["s1", "s2", "s4"]

    active = client.post("/api/v1/items/A/open").json()["active"]
    assert active == {"item_id": "A", "subitems": ["s1", "s2"], "selected": ["s1", "s2"], "is_checked": True}

    active = client.post("/api/v1/active/subitems/toggle", json={"ref": "s2"}).json()["active"]
    assert active["selected"] == ["s1"]

    response = client.get("/api/v1/export")
    assert response.status_code == 200
    assert 'filename="selected_recipes.json"' in response.headers["content-disposition"]
    assert json.loads(response.content) == {
        "A": {"title": "Alpha", "images": [{"url": "s1", "alt": "first"}]},
        "C": {"title": "Gamma", "images": [{"url": "s4"}]},
    }

    body = client.post("/api/v1/active/close").json()
    assert body["active_item"] is None
    assert client.get("/api/v1/active").json() == {"active": None}


def test_select_subitems_replaces_active_pick(client):
    client.post("/api/v1/items/A/open")
    active = client.put("/api/v1/active/subitems", json={"selected": ["s2", None]}).json()["active"]
    assert active["selected"] == ["s2"]
    assert active["is_checked"] is True

    body = client.get("/api/v1/selection").json()
    assert body["selected_subitems"] == ["s2", "s4"]


def test_unknown_item_is_404(client):
    assert client.post("/api/v1/items/Nope/check", json={"checked": True}).status_code == 404
    assert client.post("/api/v1/items/Nope/open").status_code == 404

    client.post("/api/v1/items/A/open")
    assert client.post("/api/v1/active/subitems/toggle", json={"ref": "s3"}).status_code == 404


def test_no_active_item_is_409(client):
    assert client.post("/api/v1/active/subitems/toggle", json={"ref": "s1"}).status_code == 409
    assert client.put("/api/v1/active/subitems", json={"selected": []}).status_code == 409


def test_errors_and_resubscribe(client):
    assert client.get("/api/v1/errors").json() == {"errors": []}
    assert client.post("/api/v1/subscription/resubscribe", json={}).json() == {"live": True}


def test_engine_unavailable_without_lifespan(catalog_provider):
    app = create_app(SyncConfig(), store=InMemorySelectionStore(), catalog_provider=catalog_provider)
    client = TestClient(app)
    assert client.get("/api/v1/selection").status_code == 503


def test_catalog_failure_stops_startup():
    app = create_app(SyncConfig(), store=InMemorySelectionStore(), catalog_provider=BrokenCatalogProvider())
    with pytest.raises(CatalogLoadError):
        with TestClient(app):
            pass


def test_health_counts_reported_errors(catalog_provider):
    app = create_app(SyncConfig(), store=RejectingStore(), catalog_provider=catalog_provider)
    with TestClient(app) as client:
        client.post("/api/v1/items/A/check", json={"checked": True})
        client.portal.call(app.state.engine.flush)

        assert client.get("/health").json()["errors"] == {"UpsertError": 1}
        errors = client.get("/api/v1/errors").json()["errors"]
        assert [e["kind"] for e in errors] == ["UpsertError"]
        assert errors[0]["item_id"] == "A"
