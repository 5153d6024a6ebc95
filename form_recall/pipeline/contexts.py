from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from ..config import Settings
from ..models import FieldDescriptor, ResolvedValue


@dataclass
class ScanContext:
    """Per-pass input: profile data for rule-based answers and the re-scan flag."""

    profile_data: dict[str, Any] = field(default_factory=dict)
    incremental: bool = False


@dataclass
class ResolutionContext:
    store: Any
    scan: ScanContext
    settings: Settings
    rule_engine: Optional[Any] = None
    fields: list[FieldDescriptor] = field(default_factory=list)
    results: dict[str, ResolvedValue] = field(default_factory=dict)

    def is_resolved(self, descriptor: FieldDescriptor) -> bool:
        return descriptor.selector in self.results
