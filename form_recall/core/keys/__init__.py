"""
Semantic key domain logic.

This module handles:
- Key generation from field name, label and context
- Section namespacing of row-bound single values
- Alias canonicalization of storage keys
- Fuzzy key matching (exact, label, alias, weighted Jaccard)
- Start/end role assignment for bare date fields

All logic is pure business logic with no I/O dependencies.
"""

from __future__ import annotations

from .dates import DateRoleTracker
from .generator import SemanticKeyGenerator, sanitize_label, tokenize
from .matching import FuzzyKeyMatcher, weighted_jaccard
from .models import KeyMatch, KeyResult, is_scoped_key, split_scoped_key
from .vocabulary import is_global_fact

__all__ = [
    "DateRoleTracker",
    "FuzzyKeyMatcher",
    "KeyMatch",
    "KeyResult",
    "SemanticKeyGenerator",
    "is_global_fact",
    "is_scoped_key",
    "sanitize_label",
    "split_scoped_key",
    "tokenize",
    "weighted_jaccard",
]
