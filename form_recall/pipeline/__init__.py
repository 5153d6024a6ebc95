from __future__ import annotations

from .contexts import ResolutionContext, ScanContext
from .core import ResolutionPipeline
from .types import FieldGroups, RuleResolution

__all__ = [
    "FieldGroups",
    "ResolutionContext",
    "ResolutionPipeline",
    "RuleResolution",
    "ScanContext",
]
