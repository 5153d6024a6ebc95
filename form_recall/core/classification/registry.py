from __future__ import annotations

from typing import Iterator


class RepeaterRegistry:
    """
    Base keys proven to repeat by a structural signal.

    Membership forces SECTION_REPEATER for every later field with the same base
    key, so incremental re-scans of one document cannot flip a field back.
    """

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def add(self, base_key: str) -> bool:
        """Register a base key; return True when it was not known yet."""
        if not base_key or base_key in self._keys:
            return False
        self._keys.add(base_key)
        return True

    def reset(self) -> None:
        self._keys.clear()

    def __contains__(self, base_key: object) -> bool:
        return base_key in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._keys))
