#!/usr/bin/env python3
"""
Export the current selection to selected_recipes.json.

Loads the catalog, seeds the selection from the configured store and writes the
projection of checked recipes restricted to their selected images.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
load_dotenv()

# Add repo root to path so `src.*` imports work when running from scripts/
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.api.dependencies import build_catalog_provider, build_store
from src.error_handler import ErrorReporter
from src.sync.engine import ReconciliationEngine
from src.sync.errors import CatalogLoadError
from src.sync.export import write_export
from src.utils.config_loader import SyncConfig, load_sync_config


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    handlers = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


async def export_selection(config: SyncConfig, output_dir: Path) -> Path:
    catalog = await build_catalog_provider(config).load()
    store = build_store(config)
    reporter = ErrorReporter(max_history=config.error_history)
    engine = ReconciliationEngine(catalog, store, reporter)
    try:
        await engine.start()
        mapping = engine.export()
    finally:
        await engine.close()
        await store.close()
    if reporter.recent():
        logging.getLogger(__name__).warning("%d store error(s) while exporting", len(reporter.recent()))
    return write_export(mapping, output_dir, filename=config.export.filename)


def main() -> int:
    parser = argparse.ArgumentParser(description="Write selected_recipes.json from the stored selection")
    parser.add_argument("--config", type=Path, default=None, help="Path to sync_config.yml")
    parser.add_argument("--output-dir", type=Path, default=None, help="Directory for the export file")
    parser.add_argument("--verbose", "-v", action="store_true")
    parser.add_argument("--log-file", type=Path, default=None)
    args = parser.parse_args()

    setup_logging(args.verbose, args.log_file)
    config = load_sync_config(args.config)
    output_dir = args.output_dir or Path(config.export.output_dir)

    try:
        path = asyncio.run(export_selection(config, output_dir))
    except CatalogLoadError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    print(f"✅ Export written to {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
