from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from ..app import FormRecallApp
from ..pipeline import ScanContext
from .classify import load_records
from .output import render_value


async def run(app: FormRecallApp, path: Path, *, json_output: bool = False) -> dict[str, Any]:
    """Classify the fields in a JSON file and show what the cache would replay (read-only)."""
    pipeline = app.build_pipeline(load_entry_points=False)
    await pipeline.begin_pass(ScanContext())
    fields = await pipeline.ingest(load_records(path))
    found: dict[str, Any] = {}
    for field in fields:
        hit = await app.store.read(field)
        if hit is None:
            hit = await app.store.recall(field)
        found[field.selector] = hit.to_record() if hit else None

    if json_output:
        print(json.dumps(found, indent=2, ensure_ascii=False))
        return found
    for selector, record in found.items():
        if record is None:
            print(f"{selector}: (no entry)")
            continue
        print(f"{selector}: {render_value(record['value'])} ({record['source']}, {record['confidence']:.2f})")
    return found
