from pathlib import Path

import pytest
from pydantic import ValidationError

from src.utils.config_loader import DEFAULT_CONFIG_PATH, load_sync_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SYNC_CONFIG", "SELECTION_STORE", "DATABASE_URL", "CATALOG_URL", "CATALOG_PATH"):
        monkeypatch.delenv(name, raising=False)


def write_config(tmp_path, text):
    path = tmp_path / "sync_config.yml"
    path.write_text(text, encoding="utf-8")
    return path


def test_default_config_file_loads():
    config = load_sync_config(DEFAULT_CONFIG_PATH)
    assert config.catalog.source == "file"
    assert config.store.backend == "memory"
    assert config.export.filename == "selected_recipes.json"


def test_empty_file_uses_defaults(tmp_path):
    config = load_sync_config(write_config(tmp_path, ""))
    assert config.catalog.subitems_field == "images"
    assert config.catalog.ref_key == "url"
    assert config.store.channel == "checked_states"
    assert config.error_history == 100


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_sync_config(tmp_path / "missing.yml")


def test_http_catalog_requires_url(tmp_path):
    with pytest.raises(ValidationError):
        load_sync_config(write_config(tmp_path, "catalog:\n  source: http\n"))


def test_database_url_switches_to_postgres(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/selection")
    assert load_sync_config(write_config(tmp_path, "")).store.backend == "postgres"


def test_explicit_store_override_wins(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/selection")
    monkeypatch.setenv("SELECTION_STORE", "memory")
    assert load_sync_config(write_config(tmp_path, "")).store.backend == "memory"


def test_catalog_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("CATALOG_PATH", "/srv/recipes.json")
    config = load_sync_config(write_config(tmp_path, ""))
    assert config.catalog.resolved_path() == Path("/srv/recipes.json")

    monkeypatch.setenv("CATALOG_URL", "https://example.test/recipes.json")
    config = load_sync_config(write_config(tmp_path, ""))
    assert config.catalog.source == "http"
    assert config.catalog.url == "https://example.test/recipes.json"


def test_custom_schema_from_file(tmp_path):
    config = load_sync_config(write_config(tmp_path, "catalog:\n  subitems_field: photos\n  ref_key: src\n"))
    schema = config.catalog.catalog_schema()
    assert schema.subitems_field == "photos"
    assert schema.ref_key == "src"


def test_relative_catalog_path_resolves_against_base(tmp_path):
    config = load_sync_config(write_config(tmp_path, "catalog:\n  path: data/recipes.json\n"))
    assert config.catalog.resolved_path(tmp_path) == tmp_path / "data" / "recipes.json"
