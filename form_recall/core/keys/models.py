"""
Data models for semantic keys and key matching.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

SECTION_PREFIX = "SECTION:"


@dataclass(frozen=True, slots=True)
class KeyResult:
    """
    Identity generated for one field.

    Attributes:
        key: Storage/lookup key, possibly section-scoped
        is_high_confidence: True when the key came from a materialized label or ML
        fallback_key: Tokenized key, used as a second exact lookup
        base_key: Unscoped, index-free key (duplicate counting and the registry)
    """

    key: str
    is_high_confidence: bool
    fallback_key: Optional[str]
    base_key: str

    @property
    def is_scoped(self) -> bool:
        return is_scoped_key(self.key)


@dataclass(frozen=True, slots=True)
class KeyMatch:
    """
    Result of a fuzzy key lookup.

    Attributes:
        matched_key: Key found in the searched key set
        similarity: 0.0 - 1.0
        source: exact, exact_label, alias or jaccard
    """

    matched_key: str
    similarity: float
    source: str

    def __repr__(self) -> str:
        return f"KeyMatch({self.matched_key!r}, {self.similarity:.2f}, {self.source})"


def is_scoped_key(key: str) -> bool:
    return bool(key) and key.startswith(SECTION_PREFIX)


def split_scoped_key(key: str) -> tuple[Optional[str], str]:
    """Split "SECTION:work_0:job_title" into ("SECTION:work_0:", "job_title")."""
    if not is_scoped_key(key):
        return None, key
    namespace, sep, base = key[len(SECTION_PREFIX):].partition(":")
    if not sep:
        return None, key
    return f"{SECTION_PREFIX}{namespace}:", base
