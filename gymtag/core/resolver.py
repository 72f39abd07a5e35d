"""Starting-coordinate lookup for matched catalog records."""

from __future__ import annotations

import logging
from typing import Optional

from gymtag.core.collaborators import CatalogError, RoutePermissionError, WorkoutCatalog
from gymtag.core.context import RunContext
from gymtag.core.models import CacheEntry, Coordinate, ExternalRecord

logger = logging.getLogger(__name__)


class LocationResolver:
    """Resolves where a workout started, fetching each record's route at most once per run."""

    def __init__(self, catalog: WorkoutCatalog) -> None:
        self.catalog = catalog

    async def resolve(
        self,
        context: RunContext,
        record: Optional[ExternalRecord],
        cache_entry: Optional[CacheEntry] = None,
    ) -> Optional[Coordinate]:
        if cache_entry is not None and cache_entry.coordinate is not None:
            return cache_entry.coordinate
        if record is None:
            return None

        if record.id in context.route_starts:
            return context.route_starts[record.id]

        coordinate = await self._fetch(context, record.id)
        context.route_starts[record.id] = coordinate
        return coordinate

    async def _fetch(self, context: RunContext, record_id: str) -> Optional[Coordinate]:
        try:
            return await self.catalog.fetch_route_start(record_id)
        except RoutePermissionError as exc:
            if not context.route_permission_unavailable:
                logger.warning("Route permission unavailable: %s", exc)
            context.mark_route_permission_unavailable()
            return None
        except (CatalogError, OSError, ValueError) as exc:
            logger.debug("Route start fetch failed for record %s: %s", record_id, exc)
            return None
