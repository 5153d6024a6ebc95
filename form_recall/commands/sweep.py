from __future__ import annotations

from ..app import FormRecallApp


async def run(app: FormRecallApp, *, force: bool = False) -> int:
    """Remove expired entries; without force only when the cleanup interval has elapsed."""
    if force:
        removed = await app.store.sweep_expired()
    else:
        removed = await app.store.maintain()
    noun = "entry" if removed == 1 else "entries"
    print(f"Sweep complete: removed {removed} expired {noun}.")
    return removed
