from __future__ import annotations

from ..app import FormRecallApp


async def run(app: FormRecallApp, *, assume_yes: bool = False) -> bool:
    if not assume_yes:
        answer = input("Delete every remembered field value? [y/N] ").strip().lower()
        if answer not in {"y", "yes"}:
            print("Aborted.")
            return False
    cleared = await app.store.clear()
    print("Cache cleared." if cleared else "Cache could not be cleared (see warnings).")
    return cleared
