from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..models import FieldDescriptor, InstanceType


async def maybe_await(value: Any) -> Any:
    """Collaborators may be sync or async; unwrap either."""
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass
class FieldGroups:
    atomic_single: list[FieldDescriptor] = field(default_factory=list)
    atomic_multi: list[FieldDescriptor] = field(default_factory=list)
    section_repeater: list[FieldDescriptor] = field(default_factory=list)
    section_candidate: list[FieldDescriptor] = field(default_factory=list)
    unclassified: list[FieldDescriptor] = field(default_factory=list)

    def add(self, descriptor: FieldDescriptor) -> None:
        kind = descriptor.instance_type
        if kind == InstanceType.ATOMIC_SINGLE:
            self.atomic_single.append(descriptor)
        elif kind == InstanceType.ATOMIC_MULTI:
            self.atomic_multi.append(descriptor)
        elif kind == InstanceType.SECTION_REPEATER:
            self.section_repeater.append(descriptor)
        elif kind == InstanceType.SECTION_CANDIDATE:
            self.section_candidate.append(descriptor)
        else:
            self.unclassified.append(descriptor)

    def atomic(self, order: list[FieldDescriptor]) -> list[FieldDescriptor]:
        """ATOMIC_SINGLE and SECTION_CANDIDATE fields in scan order."""
        wanted = {id(f) for f in self.atomic_single} | {id(f) for f in self.section_candidate}
        return [f for f in order if id(f) in wanted]

    def summary(self) -> dict[str, int]:
        return {
            "atomic_single": len(self.atomic_single),
            "atomic_multi": len(self.atomic_multi),
            "section_repeater": len(self.section_repeater),
            "section_candidate": len(self.section_candidate),
            "unclassified": len(self.unclassified),
        }


@dataclass(frozen=True)
class RuleResolution:
    defined: dict[str, Any]
    remaining: list[Any]

    @classmethod
    def coerce(cls, raw: Any) -> "RuleResolution":
        if raw is None:
            return cls(defined={}, remaining=[])
        if isinstance(raw, RuleResolution):
            return raw
        if isinstance(raw, Mapping):
            defined = raw.get("defined") or {}
            remaining = raw.get("remaining") or []
        else:
            defined = getattr(raw, "defined", None) or {}
            remaining = getattr(raw, "remaining", None) or []
        return cls(defined=dict(defined), remaining=list(remaining))
