"""
Fuzzy key matching.

Strategies are tried in confidence order:
- Exact key equality (1.0)
- Strict match against the sanitized field label (0.99)
- Alias registry, either direction (0.95)
- Weighted Jaccard over stemmed, synonym-expanded tokens

All functions are pure and have no I/O dependencies.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .generator import sanitize_label
from .models import KeyMatch, split_scoped_key
from .vocabulary import KEY_ALIASES, STEM_MAP, SYNONYM_GROUPS, SYNONYM_INDEX, TOKEN_WEIGHTS

DEFAULT_WEIGHT = 1.0


def _group_weights() -> dict[str, float]:
    weights: dict[str, float] = {}
    for group in SYNONYM_GROUPS:
        representative = SYNONYM_INDEX[next(iter(group))]
        known = [TOKEN_WEIGHTS[token] for token in group if token in TOKEN_WEIGHTS]
        if known:
            weights[representative] = max(known)
    return weights


_GROUP_WEIGHTS = _group_weights()


def stem(token: str) -> str:
    return STEM_MAP.get(token, token)


def token_weight(token: str) -> float:
    stemmed = stem(token)
    for candidate in (stemmed, token):
        if candidate in TOKEN_WEIGHTS:
            return TOKEN_WEIGHTS[candidate]
    return _GROUP_WEIGHTS.get(SYNONYM_INDEX.get(stemmed, stemmed), DEFAULT_WEIGHT)


def key_concepts(key: str) -> dict[str, float]:
    """
    Reduce a key to weighted concepts.

    "company_name" -> {"business": 3.0, "name": 0.5}: the token is stemmed,
    replaced by its synonym group representative and weighted by importance.
    """
    _, base = split_scoped_key(key or "")
    concepts: dict[str, float] = {}
    for token in base.lower().split("_"):
        if not token or token.isdigit():
            continue
        stemmed = stem(token)
        concept = SYNONYM_INDEX.get(stemmed, stemmed)
        concepts[concept] = max(concepts.get(concept, 0.0), token_weight(token))
    return concepts


def weighted_jaccard(left: str, right: str) -> float:
    a = key_concepts(left)
    b = key_concepts(right)
    if not a or not b:
        return 0.0
    union = set(a) | set(b)
    total = sum(max(a.get(c, 0.0), b.get(c, 0.0)) for c in union)
    if total <= 0:
        return 0.0
    shared = sum(max(a[c], b[c]) for c in set(a) & set(b))
    return shared / total


def canonical_alias(key: str) -> str:
    prefix, base = split_scoped_key(key)
    primary = KEY_ALIASES.get(base, base)
    return f"{prefix}{primary}" if prefix else primary


class FuzzyKeyMatcher:
    """
    Finds the stored key that best represents a candidate key.

    Example:
        >>> matcher = FuzzyKeyMatcher()
        >>> matcher.find_best_match("company_name", ["employer_name"])
        KeyMatch('employer_name', 0.95, alias)
    """

    def __init__(self, *, threshold: float = 0.75, hint_tolerance: float = 0.05) -> None:
        self.threshold = threshold
        self.hint_tolerance = hint_tolerance

    def find_best_match(
        self,
        candidate: str,
        keys: Iterable[str],
        threshold: Optional[float] = None,
        hint: Optional[str] = None,
        label: Optional[str] = None,
    ) -> Optional[KeyMatch]:
        if not candidate:
            return None
        pool = list(dict.fromkeys(k for k in keys if k))
        if not pool:
            return None
        limit = self.threshold if threshold is None else threshold

        if candidate in pool:
            return KeyMatch(candidate, 1.0, "exact")

        if label:
            sanitized = sanitize_label(label)
            if sanitized:
                for key in pool:
                    if split_scoped_key(key)[1] == sanitized:
                        return KeyMatch(key, 0.99, "exact_label")

        primary = canonical_alias(candidate)
        for key in pool:
            if canonical_alias(key) == primary:
                return KeyMatch(key, 0.95, "alias")

        scored = [(weighted_jaccard(candidate, key), key) for key in pool]
        scored = [(score, key) for score, key in scored if score >= limit]
        if not scored:
            return None
        # Stable sort keeps input order among equal scores.
        scored.sort(key=lambda item: item[0], reverse=True)
        best_score, best_key = scored[0]

        hint_token = sanitize_label(hint) if hint else ""
        if hint_token and hint_token not in best_key:
            floor = best_score * (1.0 - self.hint_tolerance)
            for score, key in scored[1:]:
                if score < floor:
                    break
                if hint_token in key:
                    return KeyMatch(key, score, "jaccard")
        return KeyMatch(best_key, best_score, "jaccard")

    def similarity(self, left: str, right: str) -> float:
        if left == right:
            return 1.0
        if canonical_alias(left) == canonical_alias(right):
            return 0.95
        return weighted_jaccard(left, right)
