"""
Tiered cache of previously supplied field values.

Three disjoint buckets live in one repository:

- ATOMIC_SINGLE: one scalar per key, overwritten on every write
- ATOMIC_MULTI: a de-duplicated list per key, changed only through
  ``update_multi_selection``
- SECTION_REPEATER: one list of row dicts per section name
  (``work_experience``, ``education`` ...)

Every mutation runs under one asyncio lock so queued writers observe the
result of their predecessor. Repository I/O runs in the default executor.
Storage failures are logged and treated as a miss (reads) or a rejected write.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import re
import time
from typing import Any, Callable, Iterable, Optional

from .cache import BUCKETS, CacheRepository
from .config import Settings
from .core.keys import FuzzyKeyMatcher, KeyResult, SemanticKeyGenerator, sanitize_label, split_scoped_key
from .models import (
    CacheEntry,
    CacheStorageError,
    FieldDescriptor,
    InstanceType,
    ResolvedValue,
    Scope,
    replay_confidence,
)
from .patterns import (
    ATOMIC_SET_PATTERN,
    DEFAULT_SECTION_NAME,
    EDUCATION_CONTEXT_PATTERN,
    REFERENCE_CONTEXT_PATTERN,
    SECTION_KEYWORD_PATTERN,
    SECTION_NAMES,
    WORK_CONTEXT_PATTERN,
)

logger = logging.getLogger(__name__)

CACHE_VERSION = 2
CACHE_SOURCE = "cache"
MEMORY_SOURCE = "memory"
SECONDS_PER_DAY = 86_400

SINGLE = InstanceType.ATOMIC_SINGLE.value
MULTI = InstanceType.ATOMIC_MULTI.value
SECTION = InstanceType.SECTION_REPEATER.value

_MIN_VARIANT_TERM = 3


def split_items(value: Any) -> list[str]:
    """"Python, Rust" / ["Python", "Rust"] -> ["Python", "Rust"]."""
    if value is None:
        return []
    raw: Iterable[Any] = value if isinstance(value, (list, tuple, set)) else str(value).split(",")
    items: list[str] = []
    for item in raw:
        text = str(item).strip()
        if text and text not in items:
            items.append(text)
    return items


def resolve_section_name(field: FieldDescriptor) -> str:
    """Map a field to the section bucket holding its rows."""
    if field.section_type:
        return SECTION_NAMES.get(field.section_type, field.section_type)
    for text in (field.parent_context, field.context_text()):
        if not text:
            continue
        if EDUCATION_CONTEXT_PATTERN.search(text):
            return "education"
        if REFERENCE_CONTEXT_PATTERN.search(text):
            return "references"
        if WORK_CONTEXT_PATTERN.search(text):
            return "work_experience"
    # Date-only and other ambiguous rows.
    return DEFAULT_SECTION_NAME


def bucket_for(field: FieldDescriptor) -> str:
    """Bucket from the frozen instance type, falling back to keyword heuristics."""
    kind = field.instance_type
    if kind == InstanceType.SECTION_REPEATER:
        return SECTION
    if kind == InstanceType.ATOMIC_MULTI:
        return MULTI
    if kind in (InstanceType.ATOMIC_SINGLE, InstanceType.SECTION_CANDIDATE):
        return SINGLE
    context = field.context_text()
    if field.is_multi_valued:
        return MULTI
    if field.field_index is not None and field.section_type and SECTION_KEYWORD_PATTERN.search(context):
        return SECTION
    if ATOMIC_SET_PATTERN.search(context) and field.group_id:
        return MULTI
    return SINGLE


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return not value
    return False


def _whole_word(term: str, text: str) -> bool:
    return re.search(rf"(?:^|_){re.escape(term)}(?:_|$)", text) is not None


class TieredCacheStore:
    def __init__(
        self,
        repository: CacheRepository,
        settings: Optional[Settings] = None,
        *,
        key_generator: Optional[SemanticKeyGenerator] = None,
        matcher: Optional[FuzzyKeyMatcher] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.repository = repository
        self.settings = settings or Settings()
        self.key_generator = key_generator or SemanticKeyGenerator(
            ml_confidence_threshold=self.settings.keys.ml_confidence_threshold
        )
        self.matcher = matcher or FuzzyKeyMatcher(
            threshold=self.settings.matching.match_threshold,
            hint_tolerance=self.settings.matching.hint_tolerance,
        )
        self.clock = clock
        self._lock = asyncio.Lock()

    async def _io(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args))

    # Keys

    def keys_for(self, field: FieldDescriptor, label: Optional[str] = None) -> tuple[str, Optional[str], str]:
        """Return (storage key, fallback storage key, canonical base key)."""
        result: KeyResult = self.key_generator.generate_key(field, label)
        canonical = self.key_generator.get_canonical_key
        primary = canonical(result.key)
        fallback = canonical(result.fallback_key) if result.fallback_key else None
        if fallback == primary:
            fallback = None
        return primary, fallback, canonical(result.base_key)

    def _multi_key(self, field: FieldDescriptor, label: Optional[str]) -> str:
        primary, _, base = self.keys_for(field, label)
        # Set values are person level; section namespaces never reach this bucket.
        return base if split_scoped_key(primary)[0] else primary

    # Writes

    async def write(self, field: FieldDescriptor, label: Optional[str], value: Any) -> bool:
        """Store a value for a single-value or section field; sets are rejected."""
        if field.is_ambiguous or _is_empty(value):
            return False
        bucket = bucket_for(field)
        if bucket == MULTI:
            logger.debug("Rejected generic write to ATOMIC_MULTI for %s; use update_multi_selection", field.selector)
            return False
        text = label if label is not None else field.label
        async with self._lock:
            try:
                if bucket == SECTION:
                    await self._write_section_row(field, text, value)
                else:
                    await self._write_single(field, text, value)
                await self._update_metadata()
            except CacheStorageError as exc:
                logger.warning("Cache write failed for %s: %s", field.selector, exc)
                return False
        return True

    async def _write_single(self, field: FieldDescriptor, label: str, value: Any) -> None:
        key, _, _ = self.keys_for(field, label)
        record = await self._io(self.repository.get, SINGLE, key)
        entry = CacheEntry.from_record(record) if record else CacheEntry(
            type=field.instance_type or InstanceType.ATOMIC_SINGLE,
            scope=field.scope or Scope.GLOBAL,
        )
        entry.value = value
        entry.touch(self.clock())
        entry.add_variant(sanitize_label(label))
        await self._io(self.repository.set, SINGLE, key, entry.to_record())
        logger.debug("Cached %s -> %s (uses=%d)", field.selector, key, entry.use_count)

    async def _write_section_row(self, field: FieldDescriptor, label: str, value: Any) -> None:
        section = resolve_section_name(field)
        _, _, column = self.keys_for(field, label)
        index = field.field_index if field.field_index is not None and field.field_index >= 0 else 0
        record = await self._io(self.repository.get, SECTION, section)
        entry = CacheEntry.from_record(record) if record else CacheEntry(
            value=[], type=InstanceType.SECTION_REPEATER, scope=Scope.SECTION
        )
        rows = [dict(row) if isinstance(row, dict) else {} for row in (entry.value or [])]
        while len(rows) <= index:
            rows.append({})
        rows[index][column] = value
        entry.value = rows
        entry.touch(self.clock())
        entry.add_variant(sanitize_label(label))
        await self._io(self.repository.set, SECTION, section, entry.to_record())
        logger.debug("Cached %s -> %s[%d].%s", field.selector, section, index, column)

    async def update_multi_selection(
        self, field: FieldDescriptor, label: Optional[str], value: Any, is_selected: bool
    ) -> bool:
        """Add items to (or remove them from) the stored set of a multi-value field."""
        if field.is_ambiguous:
            return False
        items = split_items(value)
        if not items:
            return False
        text = label if label is not None else field.label
        key = self._multi_key(field, text)
        async with self._lock:
            try:
                record = await self._io(self.repository.get, MULTI, key)
                if record is None and not is_selected:
                    return True
                entry = CacheEntry.from_record(record) if record else CacheEntry(
                    value=[], type=InstanceType.ATOMIC_MULTI, scope=Scope.GLOBAL
                )
                current = split_items(entry.value)
                if is_selected:
                    current.extend(item for item in items if item not in current)
                else:
                    current = [item for item in current if item not in items]
                entry.value = current
                entry.touch(self.clock())
                entry.add_variant(sanitize_label(text))
                await self._io(self.repository.set, MULTI, key, entry.to_record())
                await self._update_metadata()
            except CacheStorageError as exc:
                logger.warning("Cache selection update failed for %s: %s", field.selector, exc)
                return False
        return True

    # Reads

    async def read(self, field: FieldDescriptor, label: Optional[str] = None) -> Optional[ResolvedValue]:
        if field.is_ambiguous:
            return None
        text = label if label is not None else field.label
        bucket = bucket_for(field)
        try:
            if bucket == SECTION:
                return await self._read_section_row(field, text)
            return await self._read_atomic(field, text, bucket)
        except CacheStorageError as exc:
            logger.warning("Cache read failed for %s: %s", field.selector, exc)
            return None

    async def _read_section_row(self, field: FieldDescriptor, label: str) -> Optional[ResolvedValue]:
        section = resolve_section_name(field)
        record = await self._io(self.repository.get, SECTION, section)
        if not record:
            return None
        entry = CacheEntry.from_record(record)
        rows = entry.value if isinstance(entry.value, list) else []
        index = field.field_index if field.field_index is not None else 0
        if index < 0 or index >= len(rows) or not isinstance(rows[index], dict):
            return None
        row = rows[index]
        _, _, column = self.keys_for(field, label)
        value = row.get(column)
        if _is_empty(value):
            value = self._intra_row_match(row, column)
        # Rows never fall through to the global matchers.
        if _is_empty(value) or isinstance(value, (dict, list)):
            return None
        if not self._matches_options(field, value):
            return None
        return ResolvedValue(value, replay_confidence(entry.use_count), CACHE_SOURCE)

    def _intra_row_match(self, row: dict, column: str) -> Any:
        for key, value in row.items():
            if _is_empty(value):
                continue
            if key in column or column in key:
                return value
        match = self.matcher.find_best_match(
            column,
            [key for key, value in row.items() if not _is_empty(value)],
            threshold=self.settings.matching.read_threshold,
        )
        return row[match.matched_key] if match else None

    async def _read_atomic(self, field: FieldDescriptor, label: str, bucket: str) -> Optional[ResolvedValue]:
        primary, fallback, base = self.keys_for(field, label)
        if bucket == MULTI:
            primary = self._multi_key(field, label)
            fallback = None
        entries = await self._io(self.repository.items, bucket)
        namespace = split_scoped_key(primary)[0]

        for key in (primary, fallback):
            if key and key in entries:
                hit = self._hit(field, entries[key], bucket)
                if hit is not None:
                    return hit

        pool = [key for key in entries if split_scoped_key(key)[0] == namespace]
        hint = field.ml_prediction.label if field.ml_prediction else None
        match = self.matcher.find_best_match(
            primary, pool, threshold=self.settings.matching.read_threshold, hint=hint, label=label
        )
        if match is not None:
            hit = self._hit(field, entries[match.matched_key], bucket)
            if hit is not None:
                logger.debug("Fuzzy cache hit %s ~ %s (%.2f, %s)", primary, match.matched_key, match.similarity, match.source)
                return hit

        if bucket == SINGLE and (namespace is None or self._is_set_slot(field)):
            multi_entries = await self._io(self.repository.items, MULTI)
            candidate = primary if primary in multi_entries else base
            match = self.matcher.find_best_match(
                candidate, list(multi_entries), threshold=self.settings.matching.read_threshold
            )
            if match is not None:
                hit = self._hit(field, multi_entries[match.matched_key], MULTI)
                if hit is not None:
                    return hit

        return self._variant_search(field, label, {key: entries[key] for key in pool}, bucket)

    @staticmethod
    def _is_set_slot(field: FieldDescriptor) -> bool:
        """One of several index-addressed controls sharing a stored set (Skills 1, Skills 2 ...)."""
        return (
            field.field_index is not None
            and not field.is_multi_valued
            and ATOMIC_SET_PATTERN.search(field.context_text()) is not None
        )

    def _variant_search(
        self, field: FieldDescriptor, label: str, entries: dict[str, dict], bucket: str
    ) -> Optional[ResolvedValue]:
        terms = [sanitize_label(text) for text in (label, field.name, field.dom_id) if text]
        for term in terms:
            if len(term) < _MIN_VARIANT_TERM:
                continue
            for key, record in entries.items():
                variants = [str(v) for v in record.get("variants") or []]
                if any(_whole_word(term, v) or (len(v) >= _MIN_VARIANT_TERM and _whole_word(v, term)) for v in variants):
                    hit = self._hit(field, record, bucket, confidence=self.settings.matching.variant_confidence)
                    if hit is not None:
                        logger.debug("Variant cache hit %s ~ %s", term, key)
                        return hit
        return None

    def _hit(
        self, field: FieldDescriptor, record: dict, bucket: str, *, confidence: Optional[float] = None
    ) -> Optional[ResolvedValue]:
        entry = CacheEntry.from_record(record)
        value = entry.value
        if bucket == MULTI and isinstance(value, list):
            if field.field_index is not None and not field.is_multi_valued:
                # One of several duplicated controls sharing the stored set.
                value = value[field.field_index] if 0 <= field.field_index < len(value) else None
            elif bucket_for(field) == SINGLE:
                value = ", ".join(str(v) for v in value)
        if _is_empty(value) or isinstance(value, dict):
            return None
        if not self._matches_options(field, value):
            return None
        score = replay_confidence(entry.use_count) if confidence is None else confidence
        return ResolvedValue(value, score, CACHE_SOURCE)

    @staticmethod
    def _matches_options(field: FieldDescriptor, value: Any) -> bool:
        """A replayed value must still be offered by a select/radio control."""
        if not field.options:
            return True
        options = [option.lower() for option in field.options]
        for item in split_items(value):
            target = item.lower()
            if any(target == option or target in option for option in options):
                return True
        return False

    async def recall(self, field: FieldDescriptor, label: Optional[str] = None) -> Optional[ResolvedValue]:
        """Broader memory lookup over unscoped single values at a lower threshold."""
        if field.is_ambiguous:
            return None
        text = label if label is not None else field.label
        try:
            entries = await self._io(self.repository.items, SINGLE)
        except CacheStorageError as exc:
            logger.warning("Memory recall failed for %s: %s", field.selector, exc)
            return None
        primary, _, base = self.keys_for(field, text)
        if split_scoped_key(primary)[0] is not None:
            # Row values are isolated; person-level memory never fills a section row.
            return None
        pool = [key for key in entries if split_scoped_key(key)[0] is None]
        match = self.matcher.find_best_match(
            base, pool, threshold=self.settings.matching.recall_threshold, label=text
        )
        if match is None:
            return None
        value = entries[match.matched_key].get("value")
        if _is_empty(value) or isinstance(value, (dict, list)) or not self._matches_options(field, value):
            return None
        confidence = match.similarity * self.settings.matching.recall_confidence_factor
        return ResolvedValue(value, confidence, MEMORY_SOURCE)

    # Maintenance

    async def _update_metadata(self, **extra: Any) -> None:
        metadata = await self._io(self.repository.get_metadata)
        counts = await self._io(self.repository.counts)
        metadata["version"] = CACHE_VERSION
        metadata["totalEntries"] = sum(counts.values())
        metadata.setdefault("lastCleanup", self.clock())
        metadata.update(extra)
        await self._io(self.repository.set_metadata, metadata)

    async def sweep_expired(self, now: Optional[float] = None) -> int:
        """Delete entries unused for longer than the configured TTL."""
        moment = self.clock() if now is None else now
        cutoff = moment - self.settings.cache.ttl_days * SECONDS_PER_DAY
        async with self._lock:
            try:
                removed = await self._io(self.repository.sweep_expired, cutoff)
                await self._update_metadata(lastCleanup=moment)
            except CacheStorageError as exc:
                logger.warning("Cache sweep failed: %s", exc)
                return 0
        if removed:
            logger.info("Cache sweep removed %d expired entr%s", removed, "y" if removed == 1 else "ies")
        return removed

    async def maintain(self, now: Optional[float] = None) -> int:
        """Sweep when the last cleanup is older than the cleanup interval."""
        moment = self.clock() if now is None else now
        metadata = await self.metadata()
        last = float(metadata.get("lastCleanup") or 0.0)
        if moment - last < self.settings.cache.cleanup_interval_hours * 3600:
            return 0
        return await self.sweep_expired(moment)

    async def metadata(self) -> dict:
        try:
            return await self._io(self.repository.get_metadata)
        except CacheStorageError as exc:
            logger.warning("Cache metadata read failed: %s", exc)
            return {}

    async def stats(self) -> dict[str, Any]:
        try:
            counts = await self._io(self.repository.counts)
        except CacheStorageError as exc:
            logger.warning("Cache stats failed: %s", exc)
            counts = {bucket: 0 for bucket in BUCKETS}
        metadata = await self.metadata()
        return {
            "buckets": counts,
            "total": sum(counts.values()),
            "version": metadata.get("version", CACHE_VERSION),
            "last_cleanup": metadata.get("lastCleanup"),
            "ttl_days": self.settings.cache.ttl_days,
        }

    async def clear(self) -> bool:
        async with self._lock:
            try:
                await self._io(self.repository.clear)
                await self._update_metadata(lastCleanup=self.clock())
            except CacheStorageError as exc:
                logger.warning("Cache clear failed: %s", exc)
                return False
        logger.info("Cache cleared")
        return True
