"""
Semantic key generation.

Every field gets a stable identity that survives label drift and DOM index churn:

1. An already materialized identity (``cache_label``) is used verbatim
2. A confident ML prediction is used verbatim
3. Otherwise a tokenized key is built from the field name, label or context
4. Section-scoped single values are namespaced as
   ``SECTION:<section>_<index>:<base_key>`` unless the key is a person-level fact

All functions are pure and have no I/O dependencies.
"""

from __future__ import annotations

import re
from typing import Optional

from ...models import FieldDescriptor, InstanceType, Scope
from ...patterns import DATE_PART_PATTERN, GENERIC_LABEL_PATTERN
from .models import SECTION_PREFIX, KeyResult, split_scoped_key
from .vocabulary import KEY_ALIASES, STOP_WORDS, is_global_fact

UNKNOWN_KEY = "unknown_field"

# Tokens after which a digit run is a repeating-container row index.
CONTAINER_TOKENS = frozenset(
    {"experience", "employment", "education", "edu", "work", "job", "position", "school", "reference", "references"}
)

DATE_ROLES = frozenset({"start_date", "end_date"})
_BARE_DATE_TOKENS = frozenset({"date", "month", "year", "day"})

_CAMEL_RE = re.compile(r"([a-z])([A-Z])")
_LETTER_DIGIT_RE = re.compile(r"([a-z])(\d)|(\d)([a-z])")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_DIGITS_RE = re.compile(r"\d+")


def split_camel(value: str) -> str:
    """"workExperience" -> "work Experience"."""
    return _CAMEL_RE.sub(r"\1 \2", value or "")


def sanitize_label(label: str) -> str:
    """Simplified label form used for strict label matching ("Company Name:" -> "company_name")."""
    lowered = split_camel(label).lower()
    return _NON_ALNUM_RE.sub("_", lowered).strip("_")


def _split_letters_digits(value: str) -> str:
    return _LETTER_DIGIT_RE.sub(lambda m: f"{m.group(1) or m.group(3)}_{m.group(2) or m.group(4)}", value)


def tokenize(value: str, *, keep_container_index: bool = False) -> list[str]:
    """
    Break free text into key tokens.

    Digit runs are dropped unless ``keep_container_index`` is set and the digit
    directly follows a repeating-container token ("education[1]" -> education, 1).
    Stop words and single letters are dropped; duplicates are removed keeping order.
    """
    lowered = _split_letters_digits(split_camel(value).lower())
    tokens: list[str] = []
    seen: set[str] = set()
    previous = ""
    for token in _NON_ALNUM_RE.split(lowered):
        if not token:
            continue
        if token.isdigit():
            if keep_container_index and previous in CONTAINER_TOKENS:
                tokens.append(str(int(token)))
            previous = token
            continue
        previous = token
        if len(token) < 2 or token in STOP_WORDS or token in seen:
            continue
        seen.add(token)
        tokens.append(token)
    return tokens


class SemanticKeyGenerator:
    """Builds cache identities for fields."""

    def __init__(self, *, ml_confidence_threshold: float = 0.80) -> None:
        self.ml_confidence_threshold = ml_confidence_threshold

    def generate_key(self, field: FieldDescriptor, label: Optional[str] = None) -> KeyResult:
        target_label = self._effective_label(field, label)
        base_key = self.base_key(field, target_label)
        fallback_key = self._tokenized_key(field, target_label, sectional=field.is_sectional)

        if field.cache_label:
            _, cached_base = split_scoped_key(field.cache_label)
            return KeyResult(
                key=field.cache_label,
                is_high_confidence=True,
                fallback_key=fallback_key,
                base_key=cached_base,
            )

        prediction = field.ml_prediction
        if prediction is not None and prediction.label and prediction.confidence > self.ml_confidence_threshold:
            return KeyResult(
                key=self._namespace(field, prediction.label, prediction.label),
                is_high_confidence=True,
                fallback_key=fallback_key,
                base_key=prediction.label,
            )

        return KeyResult(
            key=self._namespace(field, fallback_key, base_key),
            is_high_confidence=False,
            fallback_key=fallback_key,
            base_key=base_key,
        )

    def base_key(self, field: FieldDescriptor, label: Optional[str] = None) -> str:
        """Unscoped, index-free identity used for duplicate counting and the registry."""
        if field.cache_label:
            return split_scoped_key(field.cache_label)[1]
        prediction = field.ml_prediction
        if prediction is not None and prediction.label and prediction.confidence > self.ml_confidence_threshold:
            return prediction.label
        return self._tokenized_key(field, self._effective_label(field, label), sectional=False)

    def get_canonical_key(self, key: str) -> str:
        """Map an alias to its primary form, keeping any section namespace."""
        prefix, base = split_scoped_key(key)
        canonical = KEY_ALIASES.get(base, base)
        return f"{prefix}{canonical}" if prefix else canonical

    def _effective_label(self, field: FieldDescriptor, label: Optional[str]) -> str:
        target = (label if label is not None else field.label) or ""
        # Option text ("Yes", "Male") says nothing about the question itself.
        if GENERIC_LABEL_PATTERN.match(target.strip()) and field.label and not GENERIC_LABEL_PATTERN.match(field.label.strip()):
            return field.label
        return target

    def _tokenized_key(self, field: FieldDescriptor, label: str, *, sectional: bool) -> str:
        tokens: list[str] = []
        for source in (field.name, label, field.parent_context):
            tokens = tokenize(source or "", keep_container_index=sectional)
            if any(not token.isdigit() for token in tokens):
                break
        else:
            tokens = []

        tokens = self._apply_date_context(field, tokens)
        if not sectional:
            tokens = [token for token in tokens if not token.isdigit()]
        key = "_".join(tokens)
        if not sectional:
            key = _DIGITS_RE.sub("", key)
        key = re.sub(r"_+", "_", key).strip("_")
        return key or UNKNOWN_KEY

    def _apply_date_context(self, field: FieldDescriptor, tokens: list[str]) -> list[str]:
        identifiers = f"{split_camel(field.name)} {split_camel(field.dom_id)}".lower()
        part_match = DATE_PART_PATTERN.search(identifiers)
        part = part_match.group(1) if part_match else None

        role = field.date_role if field.date_role in DATE_ROLES else None
        words = [token for token in tokens if not token.isdigit()]
        if role and words and all(token in _BARE_DATE_TOKENS for token in words):
            prefix = [token for token in tokens if token.isdigit()]
            parts = [token for token in words if token != "date"]
            tokens = prefix + role.split("_") + parts

        if part and part not in tokens:
            tokens = tokens + [part]
        return tokens

    @staticmethod
    def _namespace(field: FieldDescriptor, key: str, base_key: str) -> str:
        if field.scope != Scope.SECTION:
            return key
        if field.instance_type not in (InstanceType.ATOMIC_SINGLE, InstanceType.SECTION_CANDIDATE):
            return key
        if is_global_fact(base_key):
            return base_key
        section = field.section_type or "section"
        index = field.field_index if field.field_index is not None else 0
        return f"{SECTION_PREFIX}{section}_{index}:{base_key}"
