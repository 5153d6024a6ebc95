"""
Default row-index detection for repeating sections.

Used when the scanner does not supply its own indexing service:

1. Index embedded in name/id ("edu_school_1", "jobs[2].title") - structural
2. Ordinal words in the label ("Previous employer" -> 1, "Job #3" -> 2)
3. Sequential counter per section, advanced by the pipeline when a section
   header field (company, school) repeats
"""

from __future__ import annotations

import re
from typing import Optional

from .models import FieldDescriptor, IndexResult, IndexSource

STRUCTURAL_CONFIDENCE = 3
SYNTHETIC_CONFIDENCE = 1
SEQUENTIAL_CONFIDENCE = 0

_UUID_RE = re.compile(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE)
_LONG_HEX_RE = re.compile(r"[0-9a-f]*\d[0-9a-f]*[a-f][0-9a-f]*|[0-9a-f]*[a-f][0-9a-f]*\d[0-9a-f]*", re.IGNORECASE)

# Suffix ("title_1"), array ("jobs[1]") and infix ("work-1-title") positions.
ATTRIBUTE_INDEX_PATTERNS = (
    re.compile(r"[_\-](\d{1,2})$"),
    re.compile(r"\[(\d{1,2})\]"),
    re.compile(r"[_\-.](\d{1,2})[_\-.]"),
)

RANK_PATTERNS = (
    (0, re.compile(r"\b(primary|first|1st|current|latest|present|most\s?recent|main)\b", re.IGNORECASE)),
    (1, re.compile(r"\b(secondary|second|2nd|previous|former|prior|past)\b", re.IGNORECASE)),
    (2, re.compile(r"\b(tertiary|third|3rd)\b", re.IGNORECASE)),
)
NUMBER_PATTERN = re.compile(r"(?:no\.|#|num|number)\s?(\d+)", re.IGNORECASE)

COUNTER_TYPES = ("work", "education", "reference", "generic")

SECTION_HEADER_WORDS = {
    "work": ("company", "employer", "organization"),
    "education": ("school", "university", "institution"),
}


def get_section_type(label: str) -> Optional[str]:
    """Coarse section guess from a label or ML label."""
    text = (label or "").lower()
    if not text:
        return None
    if re.search(r"school|degree|education|institution|university", text):
        return "education"
    if re.search(r"company|employer|job|title|work", text):
        return "work"
    return None


def is_section_header(label: str, section_type: Optional[str]) -> bool:
    words = SECTION_HEADER_WORDS.get(section_type or "", ())
    text = (label or "").lower()
    return any(word in text for word in words)


def _strip_identifiers(value: str) -> str:
    """Remove UUIDs and hex hashes so their digits are not read as row indices."""
    cleaned = _UUID_RE.sub("", value)
    return "-".join(part for part in re.split(r"[-_]", cleaned) if not (len(part) >= 6 and _LONG_HEX_RE.fullmatch(part)))


class DefaultIndexingService:
    def __init__(self) -> None:
        self.counters: dict[str, int] = {}
        self.reset()

    def reset(self) -> None:
        self.counters = {name: 0 for name in COUNTER_TYPES}

    def increment_counter(self, section_type: Optional[str]) -> None:
        key = section_type if section_type in self.counters else "generic"
        self.counters[key] += 1

    def get_index(self, field: FieldDescriptor, section_type: Optional[str]) -> IndexResult:
        if not section_type:
            return IndexResult(None, 0, IndexSource.NONE)
        attribute = self.detect_index_from_attribute(field)
        if attribute is not None:
            return IndexResult(attribute, STRUCTURAL_CONFIDENCE, IndexSource.STRUCTURAL)
        ranked = self.detect_index_from_label(field.label)
        if ranked is not None:
            return IndexResult(ranked, SYNTHETIC_CONFIDENCE, IndexSource.SYNTHETIC)
        key = section_type if section_type in self.counters else "generic"
        return IndexResult(self.counters[key], SEQUENTIAL_CONFIDENCE, IndexSource.SYNTHETIC)

    def get_base_key(self, field: FieldDescriptor) -> str:
        source = field.name or field.dom_id or field.label
        cleaned = re.sub(r"[\[\]_\-.]\d{1,2}(?=[\[\]_\-.]|$)", "", source or "")
        return re.sub(r"[^a-z0-9]+", "_", cleaned.lower()).strip("_")

    @staticmethod
    def detect_index_from_attribute(field: FieldDescriptor) -> Optional[int]:
        for raw in (field.name, field.dom_id):
            if not raw:
                continue
            value = _strip_identifiers(raw)
            for pattern in ATTRIBUTE_INDEX_PATTERNS:
                match = pattern.search(value)
                if match:
                    return int(match.group(1))
        return None

    @staticmethod
    def detect_index_from_label(label: str) -> Optional[int]:
        if not label:
            return None
        for index, pattern in RANK_PATTERNS:
            if pattern.search(label):
                return index
        match = NUMBER_PATTERN.search(label)
        if match:
            return max(0, int(match.group(1)) - 1)
        return None
