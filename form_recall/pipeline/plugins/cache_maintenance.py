from __future__ import annotations

import logging

from ..contexts import ResolutionContext
from ..protocols import CacheMaintenancePlugin

logger = logging.getLogger(__name__)


class DefaultCacheMaintenancePlugin(CacheMaintenancePlugin):
    name = "default_cache_maintenance"

    async def after_scan(self, ctx: ResolutionContext) -> None:
        store = ctx.store
        if store is None:
            return
        removed = await store.maintain()
        if removed:
            logger.info("Cache maintenance: removed %d expired entr%s", removed, "y" if removed == 1 else "ies")
