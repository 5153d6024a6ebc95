from __future__ import annotations

import asyncio
import logging
import random
from collections import Counter
from importlib import metadata
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Sequence

from ..config import Settings
from ..core.classification import FieldClassifier, RepeaterRegistry
from ..core.keys import DateRoleTracker, SemanticKeyGenerator
from ..core.keys.generator import UNKNOWN_KEY
from ..fields import coerce_prediction, normalize_field
from ..indexing import DefaultIndexingService, get_section_type, is_section_header
from ..models import (
    FieldDescriptor,
    FieldNormalizationError,
    IndexResult,
    IndexSource,
    ResolvedValue,
    Scope,
    StructureLockedError,
)
from ..store import CACHE_SOURCE, MULTI, TieredCacheStore, bucket_for
from .contexts import ResolutionContext, ScanContext
from .protocols import AtomicStrategyPlugin, CacheMaintenancePlugin
from .types import FieldGroups, maybe_await
from .plugins.cache_maintenance import DefaultCacheMaintenancePlugin
from .plugins.cache_replay import CacheReplayStrategy
from .plugins.memory_recall import MemoryRecallStrategy
from .plugins.rule_engine import RuleEngineStrategy

logger = logging.getLogger(__name__)

# Values that came out of the cache are not written back into it.
CACHE_SOURCES = frozenset({CACHE_SOURCE, "selection_cache"})

DEFAULT_PIPELINE_ORDER: dict[str, list[str]] = {
    # Exact history first, then deterministic profile rules, then loose memory.
    "atomic_strategies": [
        "cache_replay",
        "rule_engine",
        "memory_recall",
    ],
}


def _select_entry_points(group: str) -> Iterable[Any]:
    try:
        eps = metadata.entry_points()
        if hasattr(eps, "select"):
            return eps.select(group=group)  # type: ignore[attr-defined]
        return eps.get(group, [])  # type: ignore[return-value]
    except Exception:  # pragma: no cover - depends on runtime packaging
        return []


def _load_plugins(group: str) -> list[Any]:
    plugins: list[Any] = []
    for ep in _select_entry_points(group):
        try:
            loaded = ep.load()
            plugin = loaded() if callable(loaded) else loaded
            if plugin is not None:
                plugins.append(plugin)
        except Exception as exc:  # pragma: no cover - plugin errors
            logger.warning("Failed to load plugin %s from %s: %s", getattr(ep, "name", ep), group, exc)
    return plugins


def _index_result(raw: Any) -> IndexResult:
    if isinstance(raw, IndexResult):
        return raw
    if raw is None:
        return IndexResult(None)
    if isinstance(raw, int):
        return IndexResult(raw, 0, IndexSource.SYNTHETIC)
    if isinstance(raw, Mapping):
        index = raw.get("index")
        source = raw.get("source") or (IndexSource.SYNTHETIC if index is not None else IndexSource.NONE)
        try:
            source = IndexSource(str(getattr(source, "value", source)).upper())
        except ValueError:
            source = IndexSource.SYNTHETIC if index is not None else IndexSource.NONE
        return IndexResult(
            int(index) if index is not None else None,
            int(raw.get("confidence") or 0),
            source,
        )
    return IndexResult(None)


class ResolutionPipeline:
    """
    Resolves values for the fields of one scan pass.

    Stages run strictly in order: ingest and enrich, group, atomic strategy
    chain, sectional/composite resolution, inference fallback, execution with
    write-back, cache maintenance.

    External plugins may be registered via Python entry points:

      - `form_recall.atomic_strategies`
      - `form_recall.cache_maintainers`
    """

    def __init__(
        self,
        store: TieredCacheStore,
        *,
        settings: Optional[Settings] = None,
        key_generator: Optional[SemanticKeyGenerator] = None,
        classifier: Optional[FieldClassifier] = None,
        indexer: Optional[Any] = None,
        ml_classifier: Optional[Any] = None,
        rule_engine: Optional[Any] = None,
        section_handler: Optional[Any] = None,
        composite_handler: Optional[Any] = None,
        inference_client: Optional[Any] = None,
        executor: Optional[Any] = None,
        extra_strategies: Optional[Sequence[AtomicStrategyPlugin]] = None,
        disabled_plugins: Optional[set[str]] = None,
        plugin_order: Optional[dict[str, list[str]]] = None,
        load_entry_points: bool = True,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.settings = settings or store.settings
        self.key_generator = key_generator or store.key_generator
        self.registry = classifier.registry if classifier is not None else RepeaterRegistry()
        self.classifier = classifier or FieldClassifier(
            self.registry,
            self.key_generator,
            section_score_threshold=self.settings.classifier.section_score_threshold,
            structural_signal_threshold=self.settings.classifier.structural_signal_threshold,
            repeat_threshold=self.settings.classifier.repeat_threshold,
            max_field_index=self.settings.classifier.max_field_index,
        )
        self.indexer = indexer or DefaultIndexingService()
        self.ml_classifier = ml_classifier
        self.rule_engine = rule_engine
        self.section_handler = section_handler
        self.composite_handler = composite_handler
        self.inference_client = inference_client
        self.executor = executor
        self.date_roles = DateRoleTracker()
        self._sleep = sleep
        self._rng = rng or random.Random()

        configured_disabled = disabled_plugins if disabled_plugins is not None else set(self.settings.pipeline.disabled_plugins)
        self._disabled_plugins = {name.strip() for name in configured_disabled if name and name.strip()}
        configured = {k: list(v) for k, v in (plugin_order or self.settings.pipeline.plugin_order).items()}
        self._plugin_order = {k: list(v) for k, v in DEFAULT_PIPELINE_ORDER.items()}
        for key, order in configured.items():
            self._plugin_order[key] = order

        self._atomic_strategies: list[AtomicStrategyPlugin] = []
        self._cache_maintainers: list[CacheMaintenancePlugin] = []
        if load_entry_points:
            self._atomic_strategies = list(_load_plugins("form_recall.atomic_strategies"))
            self._cache_maintainers = list(_load_plugins("form_recall.cache_maintainers"))
        self._atomic_strategies = [
            p for p in self._atomic_strategies if getattr(p, "name", "") not in self._disabled_plugins
        ]
        self._cache_maintainers = [
            p for p in self._cache_maintainers if getattr(p, "name", "") not in self._disabled_plugins
        ]

        def _append(plugin_list: list[Any], plugin: Any) -> None:
            name = getattr(plugin, "name", "") or plugin.__class__.__name__
            if name in self._disabled_plugins:
                return
            plugin_list.append(plugin)

        for strategy in extra_strategies or ():
            _append(self._atomic_strategies, strategy)
        _append(self._atomic_strategies, CacheReplayStrategy())
        _append(self._atomic_strategies, RuleEngineStrategy())
        _append(self._atomic_strategies, MemoryRecallStrategy())
        _append(self._cache_maintainers, DefaultCacheMaintenancePlugin())

        self._apply_plugin_order()

    def _apply_plugin_order(self) -> None:
        def reorder(plugins: list[Any], order: list[str]) -> list[Any]:
            if not order:
                return plugins
            named = [(getattr(p, "name", ""), p) for p in plugins]
            first: list[Any] = []
            used: set[int] = set()
            for name in order:
                for idx, (pname, plugin) in enumerate(named):
                    if idx in used:
                        continue
                    if pname == name:
                        first.append(plugin)
                        used.add(idx)
                        break
            rest = [plugin for idx, (_, plugin) in enumerate(named) if idx not in used]
            return first + rest

        mapping: dict[str, str] = {
            "atomic_strategies": "_atomic_strategies",
            "cache_maintainers": "_cache_maintainers",
        }
        for key, attr in mapping.items():
            order = self._plugin_order.get(key)
            if order:
                plugins = getattr(self, attr)
                setattr(self, attr, reorder(plugins, order))

    @property
    def strategy_names(self) -> list[str]:
        return [getattr(p, "name", p.__class__.__name__) for p in self._atomic_strategies]

    async def run(self, records: Iterable[Any], context: Optional[ScanContext] = None) -> dict[str, ResolvedValue]:
        """Resolve every field of one scan pass; unresolved fields are absent from the result."""
        scan = context or ScanContext()
        await self.begin_pass(scan)
        fields = await self.ingest(records)
        groups = self.group(fields)
        logger.debug("Field groups: %s", groups.summary())

        ctx = ResolutionContext(
            store=self.store,
            scan=scan,
            settings=self.settings,
            rule_engine=self.rule_engine,
            fields=fields,
        )
        await self.resolve_atomic(groups.atomic(fields), ctx)
        await self.resolve_sections(groups, ctx)
        unresolved = [f for f in fields if not ctx.is_resolved(f)]
        await self.resolve_inference(unresolved, ctx)
        await self.execute(fields, ctx.results)
        await self.run_maintenance(ctx)
        return dict(ctx.results)

    async def begin_pass(self, scan: ScanContext) -> None:
        if not scan.incremental:
            self.registry.reset()
        self.date_roles.reset()
        reset = getattr(self.indexer, "reset", None)
        if callable(reset):
            await maybe_await(reset())

    async def ingest(self, records: Iterable[Any]) -> list[FieldDescriptor]:
        """Normalize, enrich and classify; instance type and scope are frozen afterwards."""
        fields: list[FieldDescriptor] = []
        for record in records:
            try:
                fields.append(normalize_field(record))
            except FieldNormalizationError as exc:
                logger.warning("Skipping field record: %s", exc)

        seen_headers: set[str] = set()
        for field in fields:
            await self._predict(field)
            await self._assign_index(field, seen_headers)
            self.date_roles.assign(field)
            field.base_key = await self._base_key(field)

        duplicates = Counter(field.base_key for field in fields)
        for field in fields:
            if field.is_frozen:
                continue
            try:
                self.classifier.classify(field, duplicates[field.base_key])
            except StructureLockedError as exc:
                logger.warning("%s", exc)
                continue
            if field.scope == Scope.GLOBAL:
                # Person-level values have no row position.
                field.field_index = None
                field.index_source = IndexSource.NONE
        return fields

    async def _predict(self, field: FieldDescriptor) -> None:
        if field.ml_prediction is not None or self.ml_classifier is None:
            return
        try:
            raw = await maybe_await(self.ml_classifier.predict(field))
        except Exception:
            logger.exception("ML classifier failed for %s", field.selector)
            return
        field.ml_prediction = coerce_prediction(raw)

    async def _assign_index(self, field: FieldDescriptor, seen_headers: set[str]) -> None:
        if field.field_index is not None:
            return
        label = (field.ml_prediction.label if field.ml_prediction else "") or field.label or field.name
        section_type = field.section_type or get_section_type(label)
        if not section_type:
            return
        if is_section_header(label, section_type):
            # A second company/school header starts the next row.
            if section_type in seen_headers:
                increment = getattr(self.indexer, "increment_counter", None)
                if callable(increment):
                    await maybe_await(increment(section_type))
            seen_headers.add(section_type)
        try:
            result = _index_result(await maybe_await(self.indexer.get_index(field, section_type)))
        except Exception:
            logger.exception("Indexing service failed for %s", field.selector)
            return
        if result.index is None:
            return
        field.section_type = section_type
        field.field_index = result.index
        field.index_source = result.source

    async def _base_key(self, field: FieldDescriptor) -> str:
        base_key = self.key_generator.base_key(field)
        if base_key != UNKNOWN_KEY:
            return base_key
        get_base_key = getattr(self.indexer, "get_base_key", None)
        if callable(get_base_key):
            fallback = await maybe_await(get_base_key(field))
            if fallback:
                return str(fallback)
        return base_key

    def group(self, fields: Sequence[FieldDescriptor]) -> FieldGroups:
        groups = FieldGroups()
        for field in fields:
            groups.add(field)
        return groups

    async def resolve_atomic(self, fields: Sequence[FieldDescriptor], ctx: ResolutionContext) -> None:
        pending = list(fields)
        for strategy in self._atomic_strategies:
            if not pending:
                break
            name = getattr(strategy, "name", strategy.__class__.__name__)
            try:
                resolved = await maybe_await(strategy.resolve(list(pending), ctx))
            except Exception:
                logger.exception("Atomic strategy %s failed", name)
                continue
            self._accept(resolved, pending, ctx, source=name)
            pending = [f for f in pending if not ctx.is_resolved(f)]
        if pending:
            logger.debug("%d atomic field(s) unresolved after strategy chain", len(pending))

    async def resolve_sections(self, groups: FieldGroups, ctx: ResolutionContext) -> None:
        rows = await self._replay(groups.section_repeater, ctx)
        if rows and self.section_handler is not None:
            await self._delegate(self.section_handler, "Section handler", rows, ctx, source="section_handler")

        sets = await self._replay(groups.atomic_multi, ctx)
        if sets and self.composite_handler is not None:
            # Composite handlers fill their controls themselves.
            await self._delegate(
                self.composite_handler, "Composite handler", sets, ctx, source="composite_handler", skip_execution=True
            )

    async def _replay(self, fields: Sequence[FieldDescriptor], ctx: ResolutionContext) -> list[FieldDescriptor]:
        minimum = self.settings.cache.min_replay_confidence
        remaining: list[FieldDescriptor] = []
        for field in fields:
            hit = await self.store.read(field)
            if hit is not None and hit.confidence > minimum:
                ctx.results[field.selector] = hit
            else:
                remaining.append(field)
        return remaining

    async def _delegate(
        self,
        handler: Any,
        label: str,
        fields: Sequence[FieldDescriptor],
        ctx: ResolutionContext,
        *,
        source: str,
        skip_execution: bool = False,
    ) -> None:
        try:
            raw = await maybe_await(handler.handle(list(fields), ctx.scan))
        except Exception:
            logger.exception("%s failed", label)
            return
        self._accept(raw, fields, ctx, source=source, skip_execution=skip_execution)

    async def resolve_inference(self, fields: Sequence[FieldDescriptor], ctx: ResolutionContext) -> None:
        if not fields or self.inference_client is None:
            return
        logger.debug("Inference fallback for %d field(s)", len(fields))
        await self._delegate(self.inference_client, "Inference client", fields, ctx, source="inference")

    def _accept(
        self,
        raw: Any,
        fields: Sequence[FieldDescriptor],
        ctx: ResolutionContext,
        *,
        source: str,
        skip_execution: bool = False,
    ) -> None:
        if not raw:
            return
        if not isinstance(raw, Mapping):
            logger.warning("Ignoring %s result of type %s", source, type(raw).__name__)
            return
        allowed = {f.selector for f in fields}
        for selector, value in raw.items():
            if selector not in allowed or selector in ctx.results:
                continue
            result = ResolvedValue.coerce(value, source)
            if result is None:
                continue
            if skip_execution and not result.skip_execution:
                result = ResolvedValue(result.value, result.confidence, result.source, skip_execution=True)
            ctx.results[selector] = result

    async def execute(self, fields: Sequence[FieldDescriptor], results: Mapping[str, ResolvedValue]) -> None:
        """Fill resolved values in scan order and learn values that did not come from the cache."""
        if self.executor is None:
            return
        first = True
        for field in fields:
            result = results.get(field.selector)
            if result is None or result.skip_execution:
                continue
            if not first:
                await self._pace()
            first = False
            try:
                filled = bool(await maybe_await(self.executor.fill(field.selector, result.value, result.confidence, field)))
            except Exception:
                logger.exception("Executor failed for %s", field.selector)
                continue
            if not filled:
                logger.debug("Executor did not fill %s", field.selector)
                continue
            if result.source not in CACHE_SOURCES:
                await self.write_back(field, result)

    async def write_back(self, field: FieldDescriptor, result: ResolvedValue) -> bool:
        if field.is_ambiguous:
            return False
        if bucket_for(field) == MULTI:
            return await self.store.update_multi_selection(field, None, result.value, True)
        return await self.store.write(field, None, result.value)

    async def _pace(self) -> None:
        low = self.settings.pipeline.pacing_min_seconds
        high = self.settings.pipeline.pacing_max_seconds
        if high <= 0:
            return
        await self._sleep(self._rng.uniform(low, high))

    async def run_maintenance(self, ctx: ResolutionContext) -> None:
        for plugin in self._cache_maintainers:
            try:
                await maybe_await(plugin.after_scan(ctx))
            except Exception:
                logger.exception("Cache maintenance plugin %s failed", getattr(plugin, "name", plugin.__class__.__name__))
