from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ..app import FormRecallApp
from ..models import FieldDescriptor
from ..pipeline import ScanContext


def load_records(path: Path) -> list[Any]:
    """Read field records from a JSON file: a list, or an object with a "fields" list."""
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if isinstance(payload, dict):
        payload = payload.get("fields") or []
    if not isinstance(payload, list):
        raise SystemExit(f"{path}: expected a list of field records")
    return payload


def describe(field: FieldDescriptor, key: str) -> dict[str, Any]:
    return {
        "selector": field.selector,
        "label": field.label,
        "instance_type": field.instance_type.value if field.instance_type else None,
        "scope": field.scope.value if field.scope else None,
        "key": key,
        "base_key": field.base_key,
        "section_type": field.section_type,
        "field_index": field.field_index,
        "index_source": field.index_source.value,
        "date_role": field.date_role,
        "score": field.sectional_score,
        "reasons": list(field.routing_reasons),
    }


async def run(app: FormRecallApp, path: Path, *, json_output: bool = False) -> list[dict[str, Any]]:
    pipeline = app.build_pipeline(load_entry_points=False)
    await pipeline.begin_pass(ScanContext())
    fields = await pipeline.ingest(load_records(path))
    rows = [describe(field, app.store.keys_for(field)[0]) for field in fields]
    if json_output:
        print(json.dumps(rows, indent=2))
        return rows
    for row in rows:
        print(
            f"{row['selector']}: {row['instance_type']}/{row['scope']} key={row['key']}"
            f" [{', '.join(row['reasons'])}]"
        )
    return rows
