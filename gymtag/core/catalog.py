"""Workout catalog implementations backed by the HTTP API or a local export file."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from gymtag.core.api import HealthCatalogAPI, PermissionDeniedError
from gymtag.core.collaborators import AuthorizationError, CatalogError, RoutePermissionError
from gymtag.core.config import expand_path, resolve_store_dir
from gymtag.core.constants import CATALOG_FILE
from gymtag.core.models import Coordinate, ExternalRecord, TimeWindow
from gymtag.utils.parsing import load_data_file, parse_coordinate_pair, parse_datetime

logger = logging.getLogger(__name__)


def parse_record(payload: Dict[str, Any]) -> ExternalRecord:
    record_id = payload.get("id") or payload.get("uuid")
    if not record_id:
        raise ValueError(f"Workout record without id: {payload!r}")
    start = parse_datetime(payload.get("start") or payload.get("startDate"))
    end = parse_datetime(payload.get("end") or payload.get("endDate") or start)
    return ExternalRecord(id=str(record_id), start=start, end=max(start, end))


def _parse_records(items: List[Dict[str, Any]]) -> List[ExternalRecord]:
    records: List[ExternalRecord] = []
    for item in items:
        try:
            records.append(parse_record(item))
        except ValueError as exc:
            logger.debug("Ignoring malformed workout record: %s", exc)
    return records


class HttpWorkoutCatalog:
    """Async facade over :class:`HealthCatalogAPI`; each call runs in a worker thread."""

    def __init__(self, api: HealthCatalogAPI) -> None:
        self.api = api

    async def request_catalog_authorization(self) -> None:
        try:
            await asyncio.to_thread(self.api.authorize_workouts)
        except PermissionDeniedError as exc:
            raise AuthorizationError(f"Workout catalog access denied: {exc}") from exc

    async def request_route_authorization(self) -> None:
        try:
            await asyncio.to_thread(self.api.authorize_routes)
        except PermissionDeniedError as exc:
            raise RoutePermissionError(f"Workout route access denied: {exc}") from exc

    async def query_records(self, window: TimeWindow) -> List[ExternalRecord]:
        items = await asyncio.to_thread(
            self.api.get_workouts,
            window.start.isoformat(),
            window.end.isoformat(),
        )
        return _parse_records(items)

    async def fetch_route_start(self, record_id: str) -> Optional[Coordinate]:
        try:
            payload = await asyncio.to_thread(self.api.get_route_start, record_id)
        except PermissionDeniedError as exc:
            raise RoutePermissionError(str(exc)) from exc
        pair = parse_coordinate_pair(payload)
        return Coordinate(*pair) if pair else None


class FileWorkoutCatalog:
    """Catalog read from a JSON/YAML export of the health platform.

    Expected layout::

        {
          "authorization": {"workouts": true, "routes": true},
          "workouts": [
            {"id": "...", "start": "...", "end": "...",
             "route_start": {"latitude": 0.0, "longitude": 0.0}}
          ]
        }
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._payload: Optional[Dict[str, Any]] = None

    def _load(self) -> Dict[str, Any]:
        if self._payload is None:
            if not self.path.exists():
                raise CatalogError(f"Workout catalog file not found: {self.path}")
            try:
                raw = load_data_file(self.path)
            except ValueError as exc:
                raise CatalogError(f"Invalid workout catalog file {self.path}: {exc}") from exc
            if isinstance(raw, list):
                raw = {"workouts": raw}
            self._payload = raw if isinstance(raw, dict) else {}
        return self._payload

    def _authorized(self, scope: str) -> bool:
        flags = self._load().get("authorization", {})
        # A bare boolean applies to every scope.
        if not isinstance(flags, dict):
            return bool(flags) if flags is not None else True
        return bool(flags.get(scope, True))

    def _workouts(self) -> List[Dict[str, Any]]:
        return [item for item in self._load().get("workouts", []) if isinstance(item, dict)]

    async def request_catalog_authorization(self) -> None:
        if not self._authorized("workouts"):
            raise AuthorizationError("Workout catalog access denied")

    async def request_route_authorization(self) -> None:
        if not self._authorized("routes"):
            raise RoutePermissionError("Workout route access denied")

    async def query_records(self, window: TimeWindow) -> List[ExternalRecord]:
        records = _parse_records(self._workouts())
        return [record for record in records if record.end >= window.start and record.start <= window.end]

    async def fetch_route_start(self, record_id: str) -> Optional[Coordinate]:
        if not self._authorized("routes"):
            raise RoutePermissionError("Workout route access denied")
        for item in self._workouts():
            if str(item.get("id") or item.get("uuid")) == record_id:
                pair = parse_coordinate_pair(item.get("route_start"))
                return Coordinate(*pair) if pair else None
        return None


def build_catalog(config: Dict[str, Any], records_file: Optional[Path] = None):
    """Create the catalog configured under ``[catalog]``."""
    catalog_cfg = config.get("catalog", {})
    source = str(catalog_cfg.get("source", "file")).lower()

    if source == "http":
        api_cfg = config.get("api", {})
        token_env = str(catalog_cfg.get("token_env") or "GYMTAG_CATALOG_TOKEN")
        api = HealthCatalogAPI(
            token=os.getenv(token_env, ""),
            base_url=str(catalog_cfg.get("base_url")),
            rate_limit_delay=float(api_cfg.get("rate_limit_delay", 0.0)),
            max_retries=int(api_cfg.get("max_retries", 3)),
            timeout_seconds=int(api_cfg.get("timeout_seconds", 30)),
        )
        return HttpWorkoutCatalog(api)

    if source == "file":
        if records_file is None:
            raw = str(catalog_cfg.get("records_file") or "")
            records_file = expand_path(raw) if raw else resolve_store_dir(config) / CATALOG_FILE
        return FileWorkoutCatalog(records_file)

    raise CatalogError(f"Unknown catalog source: {source}")
