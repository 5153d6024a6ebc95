from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..app import FormRecallApp
from ..cache import CacheRepository
from ..config import Settings
from ..models import FormRecallError
from .output import disabled, enabled, error, ok as ok_line, warning


@dataclass(slots=True)
class DoctorReport:
    ok: bool
    checks: list[str]


async def run(settings: Settings, *, repository: Optional[CacheRepository] = None) -> DoctorReport:
    checks: list[str] = []
    ok = True

    try:
        app = FormRecallApp.create(settings, repository=repository)
    except FormRecallError as exc:
        return DoctorReport(ok=False, checks=[error("Cache", str(exc))])

    try:
        if settings.cache.backend == "memory":
            checks.append(warning("Cache", "in-memory backend; values are lost on exit"))
        else:
            checks.append(ok_line("Cache", str(settings.cache.path)))

        stats = await app.store.stats()
        metadata = await app.store.metadata()
        if metadata and metadata.get("version") not in (None, stats["version"]):
            checks.append(warning("Cache version", f"stored {metadata.get('version')}, expected {stats['version']}"))
        checks.append(ok_line("Cache entries", f"{stats['total']} total, TTL {settings.cache.ttl_days} days"))

        matching = settings.matching
        if matching.recall_threshold > matching.read_threshold:
            ok = False
            checks.append(error("Thresholds", "matching.recall_threshold must not exceed matching.read_threshold"))
        else:
            checks.append(
                ok_line(
                    "Thresholds",
                    f"read>={matching.read_threshold}, recall>={matching.recall_threshold}, "
                    f"replay>{settings.cache.min_replay_confidence}",
                )
            )

        try:
            pipeline = app.build_pipeline()
            checks.append(ok_line("Pipeline", " -> ".join(pipeline.strategy_names) or "no strategies"))
        except Exception as exc:
            ok = False
            checks.append(error("Pipeline", str(exc)))

        for name in ("cache_replay", "rule_engine", "memory_recall"):
            if name in settings.pipeline.disabled_plugins:
                checks.append(disabled(f"Strategy {name}"))
            else:
                checks.append(enabled(f"Strategy {name}"))
    finally:
        app.close()

    return DoctorReport(ok=ok, checks=checks)
