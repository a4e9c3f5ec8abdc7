import json

import httpx
import pytest

from src.integrations.clients.mocks.local_catalog import LocalCatalogProvider
from src.integrations.clients.real_http.catalog import HttpCatalogProvider
from src.integrations.contracts.catalog import Catalog, CatalogSchema, drop_absent, is_absent
from src.sync.errors import CatalogLoadError


def test_subitems_follow_catalog_order_and_skip_absent(catalog):
    assert catalog.subitems_of("A") == ("s1", "s2")
    assert catalog.subitems_of("B") == ("s3",)
    assert catalog.subitems_of("C") == ("s4",)
    assert catalog.subitems_of("missing") == ()


def test_item_keeps_raw_payload(catalog):
    item = catalog["A"]
    assert item.data["title"] == "Alpha"
    assert item.data["images"][0] == {"url": "s1", "alt": "first"}


def test_plain_string_entries_and_duplicates():
    catalog = Catalog.from_mapping({"X": {"images": ["u1", "null", "u1", {"url": "u2"}]}})
    assert catalog.subitems_of("X") == ("u1", "u2")


def test_item_without_subitems_field():
    catalog = Catalog.from_mapping({"Plain": {"title": "no images"}})
    assert catalog.subitems_of("Plain") == ()


def test_custom_schema():
    schema = CatalogSchema(subitems_field="photos", ref_key="src")
    catalog = Catalog.from_mapping({"X": {"photos": [{"src": "p1"}, {"url": "ignored"}]}}, schema)
    assert catalog.subitems_of("X") == ("p1",)
    assert catalog.schema is schema


@pytest.mark.parametrize(
    "raw",
    [
        ["not", "a", "mapping"],
        {"A": "not an object"},
        {"A": {"images": "s1"}},
    ],
)
def test_malformed_catalog_raises(raw):
    with pytest.raises(CatalogLoadError):
        Catalog.from_mapping(raw)


def test_absent_sentinel_helpers():
    assert is_absent(None)
    assert is_absent("null")
    assert not is_absent("s1")
    assert drop_absent(["s1", None, "null", 3, "s2"]) == ["s1", "s2"]


@pytest.mark.asyncio
async def test_local_provider_loads_file(tmp_path, recipes):
    path = tmp_path / "recipes.json"
    path.write_text(json.dumps(recipes), encoding="utf-8")

    catalog = await LocalCatalogProvider(path).load()

    assert sorted(catalog) == ["A", "B", "C"]
    assert catalog.subitems_of("A") == ("s1", "s2")


@pytest.mark.asyncio
async def test_local_provider_missing_file(tmp_path):
    with pytest.raises(CatalogLoadError):
        await LocalCatalogProvider(tmp_path / "nope.json").load()


@pytest.mark.asyncio
async def test_local_provider_invalid_json(tmp_path):
    path = tmp_path / "recipes.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(CatalogLoadError):
        await LocalCatalogProvider(path).load()


@pytest.mark.asyncio
async def test_http_provider_fetches_catalog(recipes):
    def handler(request):
        assert request.url.path == "/recipes.json"
        return httpx.Response(200, json=recipes)

    provider = HttpCatalogProvider("https://example.test/recipes.json", transport=httpx.MockTransport(handler))
    catalog = await provider.load()

    assert catalog.subitems_of("C") == ("s4",)


@pytest.mark.asyncio
async def test_http_provider_error_status():
    provider = HttpCatalogProvider(
        "https://example.test/recipes.json",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    with pytest.raises(CatalogLoadError):
        await provider.load()


@pytest.mark.asyncio
async def test_http_provider_invalid_json():
    provider = HttpCatalogProvider(
        "https://example.test/recipes.json",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>")),
    )
    with pytest.raises(CatalogLoadError):
        await provider.load()


def test_http_provider_requires_url():
    with pytest.raises(ValueError):
        HttpCatalogProvider("")
