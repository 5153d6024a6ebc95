from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol, Sequence

from ..models import FieldDescriptor, ResolvedValue
from .contexts import ResolutionContext, ScanContext


class MLClassifier(Protocol):
    def predict(self, field: FieldDescriptor) -> Any: ...


class IndexingService(Protocol):
    def get_index(self, field: FieldDescriptor, section_type: Optional[str]) -> Any: ...

    def get_base_key(self, field: FieldDescriptor) -> str: ...

    def reset(self) -> None: ...


class RuleEngine(Protocol):
    def resolve_fields(self, fields: Sequence[FieldDescriptor], profile_data: Mapping[str, Any]) -> Any: ...


class SectionHandler(Protocol):
    def handle(self, fields: Sequence[FieldDescriptor], context: ScanContext) -> Any: ...


class CompositeHandler(Protocol):
    def handle(self, fields: Sequence[FieldDescriptor], context: ScanContext) -> Any: ...


class InferenceClient(Protocol):
    def handle(self, fields: Sequence[FieldDescriptor], context: ScanContext) -> Any: ...


class Executor(Protocol):
    def fill(self, selector: str, value: Any, confidence: float, field: FieldDescriptor) -> Any: ...


class AtomicStrategyPlugin(Protocol):
    name: str

    async def resolve(
        self, fields: Sequence[FieldDescriptor], ctx: ResolutionContext
    ) -> Optional[dict[str, ResolvedValue]]: ...


class CacheMaintenancePlugin(Protocol):
    name: str

    async def after_scan(self, ctx: ResolutionContext) -> None: ...
