from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

MULTI_CONTROL_TYPES = frozenset({"checkbox", "select-multiple", "multiselect"})


class InstanceType(str, Enum):
    ATOMIC_SINGLE = "ATOMIC_SINGLE"
    ATOMIC_MULTI = "ATOMIC_MULTI"
    SECTION_REPEATER = "SECTION_REPEATER"
    SECTION_CANDIDATE = "SECTION_CANDIDATE"


class Scope(str, Enum):
    GLOBAL = "GLOBAL"
    SECTION = "SECTION"
    GROUP = "GROUP"


class IndexSource(str, Enum):
    NONE = "NONE"
    SYNTHETIC = "SYNTHETIC"
    STRUCTURAL = "STRUCTURAL"


class FormRecallError(Exception):
    """Base class for errors raised by form-recall."""


class CacheStorageError(FormRecallError):
    """Raised by a cache repository when the underlying storage fails."""


class StructureLockedError(FormRecallError):
    """Raised when a field's instance type or scope is assigned twice in one pass."""


class FieldNormalizationError(FormRecallError):
    """Raised when a raw field record cannot be turned into a FieldDescriptor."""


@dataclass(frozen=True, slots=True)
class MLPrediction:
    label: str
    confidence: float = 0.0


@dataclass(slots=True)
class FieldDescriptor:
    selector: str
    name: str = ""
    dom_id: str = ""
    label: str = ""
    control_type: str = "text"
    parent_context: str = ""
    section_type: Optional[str] = None
    field_index: Optional[int] = None
    index_source: IndexSource = IndexSource.NONE
    is_strong_repeater: bool = False
    in_repeater_container: bool = False
    group_id: Optional[str] = None
    multiple: bool = False
    placeholder: str = ""
    options: List[str] = field(default_factory=list)
    ml_prediction: Optional[MLPrediction] = None
    cache_label: Optional[str] = None
    base_key: Optional[str] = None
    date_role: Optional[str] = None
    routing_reasons: List[str] = field(default_factory=list)
    sectional_score: int = 0
    structural_signal_count: int = 0
    _instance_type: Optional[InstanceType] = field(default=None, repr=False)
    _scope: Optional[Scope] = field(default=None, repr=False)

    @property
    def instance_type(self) -> Optional[InstanceType]:
        return self._instance_type

    @property
    def scope(self) -> Optional[Scope]:
        return self._scope

    @property
    def is_frozen(self) -> bool:
        return self._instance_type is not None and self._scope is not None

    def assign_structure(self, instance_type: InstanceType, scope: Scope) -> None:
        """Record the structural classification; allowed once per scan pass."""
        if self._instance_type is not None or self._scope is not None:
            raise StructureLockedError(
                f"{self.selector}: structure already assigned "
                f"({self._instance_type}, {self._scope})"
            )
        self._instance_type = InstanceType(instance_type)
        self._scope = Scope(scope)

    @property
    def is_multi_valued(self) -> bool:
        return self.multiple or self.control_type.lower() in MULTI_CONTROL_TYPES

    @property
    def is_ambiguous(self) -> bool:
        return self.date_role == "unknown"

    @property
    def is_sectional(self) -> bool:
        if self._instance_type in (InstanceType.SECTION_REPEATER, InstanceType.SECTION_CANDIDATE):
            return True
        return self._scope == Scope.SECTION

    def context_text(self) -> str:
        parts = [self.label, self.name, self.parent_context]
        return " ".join(part for part in parts if part).lower()


@dataclass(slots=True)
class CacheEntry:
    value: Any = None
    use_count: int = 0
    confidence: float = 0.75
    variants: List[str] = field(default_factory=list)
    last_used: float = 0.0
    type: InstanceType = InstanceType.ATOMIC_SINGLE
    scope: Scope = Scope.GLOBAL

    def add_variant(self, variant: str) -> None:
        cleaned = (variant or "").strip()
        if not cleaned:
            return
        lowered = cleaned.lower()
        if any(existing.lower() == lowered for existing in self.variants):
            return
        self.variants.append(cleaned)

    def touch(self, now: float) -> None:
        self.last_used = now
        self.use_count += 1
        self.confidence = replay_confidence(self.use_count)

    def to_record(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "useCount": self.use_count,
            "confidence": self.confidence,
            "variants": list(self.variants),
            "lastUsed": self.last_used,
            "type": self.type.value,
            "scope": self.scope.value,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "CacheEntry":
        return cls(
            value=record.get("value"),
            use_count=int(record.get("useCount") or 0),
            confidence=float(record.get("confidence") or 0.75),
            variants=[str(v) for v in record.get("variants") or []],
            last_used=float(record.get("lastUsed") or 0.0),
            type=InstanceType(record.get("type") or InstanceType.ATOMIC_SINGLE.value),
            scope=Scope(record.get("scope") or Scope.GLOBAL.value),
        )


@dataclass(frozen=True, slots=True)
class ResolvedValue:
    value: Any
    confidence: float
    source: str
    skip_execution: bool = False

    def to_record(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "value": self.value,
            "confidence": round(self.confidence, 4),
            "source": self.source,
        }
        if self.skip_execution:
            payload["skipExecution"] = True
        return payload

    @classmethod
    def coerce(cls, raw: Any, default_source: str) -> Optional["ResolvedValue"]:
        """Accept collaborator output as a ResolvedValue or a plain mapping."""
        if raw is None:
            return None
        if isinstance(raw, ResolvedValue):
            return raw
        if isinstance(raw, Mapping):
            if "value" not in raw:
                return None
            return cls(
                value=raw.get("value"),
                confidence=float(raw.get("confidence", 1.0)),
                source=str(raw.get("source") or default_source),
                skip_execution=bool(raw.get("skipExecution", raw.get("skip_execution", False))),
            )
        return cls(value=raw, confidence=1.0, source=default_source)


@dataclass(frozen=True, slots=True)
class IndexResult:
    index: Optional[int]
    confidence: int = 0
    source: IndexSource = IndexSource.NONE


def replay_confidence(use_count: int) -> float:
    return min(0.95, 0.75 + use_count * 0.02)
