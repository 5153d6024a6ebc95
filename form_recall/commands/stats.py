from __future__ import annotations

import json
from datetime import datetime, timezone

from ..app import FormRecallApp


def _format_time(value: object) -> str:
    if not isinstance(value, (int, float)) or value <= 0:
        return "never"
    return datetime.fromtimestamp(value, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


async def run(app: FormRecallApp, *, json_output: bool = False) -> dict:
    stats = await app.store.stats()
    if json_output:
        print(json.dumps(stats, indent=2, sort_keys=True))
        return stats
    print(f"Cache entries: {stats['total']} (version {stats['version']}, TTL {stats['ttl_days']} days)")
    for bucket, count in stats["buckets"].items():
        print(f"  {bucket:<18} {count}")
    print(f"Last cleanup: {_format_time(stats['last_cleanup'])}")
    return stats
