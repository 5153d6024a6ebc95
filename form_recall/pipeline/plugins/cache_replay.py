from __future__ import annotations

import logging
from typing import Sequence

from ...models import FieldDescriptor, ResolvedValue
from ..contexts import ResolutionContext
from ..protocols import AtomicStrategyPlugin

logger = logging.getLogger(__name__)


class CacheReplayStrategy(AtomicStrategyPlugin):
    """Replay values previously supplied for the same field identity."""

    name = "cache_replay"

    async def resolve(self, fields: Sequence[FieldDescriptor], ctx: ResolutionContext) -> dict[str, ResolvedValue]:
        minimum = ctx.settings.cache.min_replay_confidence
        resolved: dict[str, ResolvedValue] = {}
        for field in fields:
            hit = await ctx.store.read(field)
            if hit is None or hit.confidence <= minimum:
                continue
            if hit.value is None or hit.value == "":
                continue
            resolved[field.selector] = hit
        if resolved:
            logger.debug("Cache replay resolved %d of %d field(s)", len(resolved), len(fields))
        return resolved
