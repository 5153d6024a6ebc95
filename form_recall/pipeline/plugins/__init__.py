from __future__ import annotations

from .cache_maintenance import DefaultCacheMaintenancePlugin
from .cache_replay import CacheReplayStrategy
from .memory_recall import MemoryRecallStrategy
from .rule_engine import RuleEngineStrategy

__all__ = [
    "CacheReplayStrategy",
    "DefaultCacheMaintenancePlugin",
    "MemoryRecallStrategy",
    "RuleEngineStrategy",
]
