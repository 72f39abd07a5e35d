"""Interfaces of the services the reconciliation engine consumes.

The engine never owns workout storage, location profiles, geocoding or tag
persistence. It talks to them through these protocols; ``gymtag.core.store``
and ``gymtag.core.catalog`` hold file- and HTTP-backed implementations.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Protocol

from gymtag.core.models import CacheEntry, Coordinate, ExternalRecord, TimeWindow


class CatalogError(RuntimeError):
    """Raised when the external workout catalog cannot serve a request."""


class AuthorizationError(CatalogError):
    """Raised when access to the workout catalog is denied."""


class RoutePermissionError(CatalogError):
    """Raised when workout route data cannot be read."""


class WorkoutCatalog(Protocol):
    """External health-platform catalog of workout records."""

    async def request_catalog_authorization(self) -> None:
        ...

    async def request_route_authorization(self) -> None:
        ...

    async def query_records(self, window: TimeWindow) -> List[ExternalRecord]:
        ...

    async def fetch_route_start(self, record_id: str) -> Optional[Coordinate]:
        ...


class LocationDirectory(Protocol):
    """Known location profiles."""

    async def resolve_coordinates(self) -> Dict[str, Coordinate]:
        ...

    def profile_name(self, profile_id: Optional[str]) -> Optional[str]:
        ...

    async def upsert_profile_from_manual_selection(
        self,
        name: str,
        address: Optional[str],
        coordinate: Coordinate,
    ) -> str:
        ...

    def set_last_used_location(self, profile_id: Optional[str]) -> None:
        ...


class AssignmentStore(Protocol):
    """Persistence of session to location tags."""

    def assignment_for(self, session_id: str) -> Optional[str]:
        ...

    async def apply_assignments(self, assignments: Mapping[str, str]) -> None:
        ...


class SyncCache(Protocol):
    """Read-only cache of previously synced catalog data per session."""

    def entry_for(self, session_id: str) -> Optional[CacheEntry]:
        ...
