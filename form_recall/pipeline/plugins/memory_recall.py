from __future__ import annotations

import logging
from typing import Sequence

from ...models import FieldDescriptor, ResolvedValue
from ..contexts import ResolutionContext
from ..protocols import AtomicStrategyPlugin

logger = logging.getLogger(__name__)


class MemoryRecallStrategy(AtomicStrategyPlugin):
    """Looser lookup over remembered single values for fields nothing else answered."""

    name = "memory_recall"

    async def resolve(self, fields: Sequence[FieldDescriptor], ctx: ResolutionContext) -> dict[str, ResolvedValue]:
        resolved: dict[str, ResolvedValue] = {}
        for field in fields:
            hit = await ctx.store.recall(field)
            if hit is not None:
                resolved[field.selector] = hit
        return resolved
