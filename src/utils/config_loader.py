"""
Configuration loader for the selection sync service
"""

import logging
import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from src.integrations.contracts.catalog import CatalogSchema

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "sync_config.yml"


class CatalogConfig(BaseModel):
    """Catalog source configuration"""

    source: Literal["file", "http"] = "file"
    path: str = "data/recipes.json"
    url: Optional[str] = None
    subitems_field: str = "images"
    ref_key: str = "url"
    timeout_seconds: float = Field(default=20.0, gt=0.0)

    @model_validator(mode="after")
    def _url_required_for_http(self) -> "CatalogConfig":
        if self.source == "http" and not self.url:
            raise ValueError("catalog.url is required when catalog.source is 'http'")
        return self

    def catalog_schema(self) -> CatalogSchema:
        return CatalogSchema(subitems_field=self.subitems_field, ref_key=self.ref_key)

    def resolved_path(self, base_dir: Optional[Path] = None) -> Path:
        path = Path(self.path)
        if path.is_absolute():
            return path
        return (base_dir or DEFAULT_CONFIG_PATH.parent.parent) / path


class StoreConfig(BaseModel):
    """Selection store configuration"""

    backend: Literal["memory", "postgres"] = "memory"
    database_url_env: str = "DATABASE_URL"
    channel: str = "checked_states"
    pool_size: int = Field(default=5, ge=1, le=100)
    max_overflow: int = Field(default=10, ge=0, le=100)


class ExportConfig(BaseModel):
    """Export snapshot configuration"""

    filename: str = "selected_recipes.json"
    output_dir: str = "data/exports"


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SyncConfig(BaseModel):
    """Complete service configuration"""

    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    error_history: int = Field(default=100, ge=1, le=10000)


def load_sync_config(config_path: Optional[Path] = None) -> SyncConfig:
    """
    Load and validate the service configuration from a YAML file

    Environment overrides (applied after the file):
        SELECTION_STORE: memory | postgres
        CATALOG_URL: switches the catalog source to http
        CATALOG_PATH: local catalog file

    Args:
        config_path: Path to config file. Defaults to config/sync_config.yml

    Returns:
        Validated SyncConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValidationError: If config doesn't match schema
    """
    if config_path is None:
        config_path = Path(os.getenv("SYNC_CONFIG", DEFAULT_CONFIG_PATH))

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    _apply_env_overrides(data)

    try:
        config = SyncConfig(**data)
        logger.info("Successfully loaded sync config from %s", config_path)
        return config
    except ValidationError as e:
        logger.error("Sync config validation failed: %s", e)
        raise


def _apply_env_overrides(data: dict) -> None:
    store = data.setdefault("store", {}) or {}
    catalog = data.setdefault("catalog", {}) or {}
    data["store"], data["catalog"] = store, catalog

    backend = os.getenv("SELECTION_STORE", "").strip().lower()
    if backend:
        store["backend"] = backend
    elif os.getenv(store.get("database_url_env", "DATABASE_URL")):
        store["backend"] = "postgres"

    if os.getenv("CATALOG_URL"):
        catalog["source"] = "http"
        catalog["url"] = os.environ["CATALOG_URL"]
    elif os.getenv("CATALOG_PATH"):
        catalog["source"] = "file"
        catalog["path"] = os.environ["CATALOG_PATH"]
