"""
Start/end role assignment for bare date fields inside one section row.

Rows usually carry a start and an end date. A label such as "Date" or "Month"
does not say which one it is, so roles are assigned by order of appearance:
the first bare field of a given date part becomes ``start_date``, the second
``end_date``. A third one cannot be paired and is flagged ``unknown``; it is
never replayed from or written to the cache.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from ...models import FieldDescriptor

logger = logging.getLogger(__name__)

UNKNOWN_ROLE = "unknown"
ROLE_SEQUENCE = ("start_date", "end_date")

_EXPLICIT_ROLE_RE = re.compile(
    r"\b(start|end|from|to|begin|finish|until|graduat\w*|birth|dob|expir\w*|issued?|current)\b|"
    r"(start|end)_?date",
    re.IGNORECASE,
)
_DATE_WORD_RE = re.compile(r"\b(date|month|year|day)\b", re.IGNORECASE)
_DATE_CONTROLS = frozenset({"date", "month"})


class DateRoleTracker:
    def __init__(self) -> None:
        self._seen: dict[tuple[str, int, str], int] = {}

    def reset(self) -> None:
        self._seen.clear()

    def assign(self, field: FieldDescriptor) -> Optional[str]:
        """Set ``field.date_role`` for a bare date field of a section row; return it."""
        if field.date_role:
            return field.date_role
        if not field.section_type:
            return None
        part = _bare_date_part(field)
        if part is None:
            return None
        slot = (field.section_type, field.field_index if field.field_index is not None else 0, part)
        position = self._seen.get(slot, 0)
        self._seen[slot] = position + 1
        role = ROLE_SEQUENCE[position] if position < len(ROLE_SEQUENCE) else UNKNOWN_ROLE
        if role == UNKNOWN_ROLE:
            logger.debug("Ambiguous date field %s (%s occurrence %d)", field.selector, part, position + 1)
        field.date_role = role
        return role


def _bare_date_part(field: FieldDescriptor) -> Optional[str]:
    text = " ".join(part for part in (field.label, field.name.replace("_", " "), field.placeholder) if part)
    if _EXPLICIT_ROLE_RE.search(text):
        return None
    match = _DATE_WORD_RE.search(field.label or "")
    if match:
        # "Month" and "Year" selects of one date pair up separately.
        return match.group(1).lower()
    if field.control_type.lower() in _DATE_CONTROLS:
        return "date"
    return None
