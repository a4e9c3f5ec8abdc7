"""
Export projection of the catalog restricted to the current selection.

``project`` is pure: it deep-copies catalog payloads and never touches the
selection state or the catalog. The result is plain JSON-serializable data.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import AbstractSet, Any, Dict, Mapping, Union

from src.integrations.contracts.catalog import Catalog

logger = logging.getLogger(__name__)

EXPORT_FILENAME = "selected_recipes.json"


def project(
    catalog: Catalog,
    checked_by_item: Mapping[str, bool],
    selected_subitems: AbstractSet[str],
) -> Dict[str, Dict[str, Any]]:
    """
    Build ``{item_id: item}`` for every checked item that keeps at least one
    selected sub-item. Sub-item entries keep their catalog order and shape;
    absent entries never survive the filter.
    """
    schema = catalog.schema
    result: Dict[str, Dict[str, Any]] = {}
    for item_id, item in catalog.items():
        if not checked_by_item.get(item_id):
            continue
        entries = item.data.get(schema.subitems_field) or []
        kept = []
        for entry in entries:
            ref = schema.ref_of(entry)
            if ref is not None and ref in selected_subitems:
                kept.append(copy.deepcopy(entry))
        if not kept:
            continue
        projected = copy.deepcopy(item.data)
        projected[schema.subitems_field] = kept
        result[item_id] = projected
    return result


def render_export(mapping: Mapping[str, Any]) -> str:
    return json.dumps(mapping, indent=2, ensure_ascii=False)


def write_export(mapping: Mapping[str, Any], output_dir: Union[str, Path], filename: str = EXPORT_FILENAME) -> Path:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / filename
    path.write_text(render_export(mapping), encoding="utf-8")
    logger.info("Exported %d item(s) to %s", len(mapping), path)
    return path
