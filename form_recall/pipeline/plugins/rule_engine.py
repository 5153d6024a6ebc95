from __future__ import annotations

import logging
from typing import Sequence

from ...models import FieldDescriptor, ResolvedValue
from ..contexts import ResolutionContext
from ..protocols import AtomicStrategyPlugin
from ..types import RuleResolution, maybe_await

logger = logging.getLogger(__name__)


class RuleEngineStrategy(AtomicStrategyPlugin):
    """Deterministic answers derived from profile data by the rule engine collaborator."""

    name = "rule_engine"

    async def resolve(self, fields: Sequence[FieldDescriptor], ctx: ResolutionContext) -> dict[str, ResolvedValue]:
        if ctx.rule_engine is None:
            return {}
        raw = await maybe_await(ctx.rule_engine.resolve_fields(list(fields), ctx.scan.profile_data))
        outcome = RuleResolution.coerce(raw)
        resolved: dict[str, ResolvedValue] = {}
        for selector, value in outcome.defined.items():
            result = ResolvedValue.coerce(value, self.name)
            if result is None or result.value is None or result.value == "":
                continue
            resolved[selector] = result
        logger.debug("Rule engine resolved %d field(s), %d remaining", len(resolved), len(outcome.remaining))
        return resolved
