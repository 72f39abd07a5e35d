"""File-backed sessions, location profiles, tag annotations and sync cache."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from gymtag.core.api import GeocodingClient
from gymtag.core.constants import (
    ANNOTATIONS_FILE,
    DEFAULT_LOCATION_NAME,
    MANUAL_SELECTION_PROXIMITY_METERS,
    PROFILES_FILE,
    SESSIONS_FILE,
    SYNC_CACHE_FILE,
)
from gymtag.core.geo import haversine_meters
from gymtag.core.models import CacheEntry, Coordinate, LocationProfile, LoggedSession
from gymtag.utils.parsing import (
    load_data_file,
    load_object_list,
    parse_coordinate_pair,
    parse_datetime,
    parse_optional_datetime,
)

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when a data file cannot be read."""


def _read_json_object(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = load_data_file(path)
    except ValueError as exc:
        raise StoreError(f"Invalid data file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise StoreError(f"Data file {path} must contain an object at the root")
    return data


def _write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n")


def _normalized(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _coordinate_from(payload: Dict[str, Any]) -> Optional[Coordinate]:
    pair = parse_coordinate_pair(payload.get("coordinate") or payload)
    return Coordinate(*pair) if pair else None


def parse_session(payload: Dict[str, Any]) -> LoggedSession:
    start = payload.get("start") or payload.get("date")
    return LoggedSession(
        id=str(payload["id"]),
        name=str(payload.get("name") or "Workout"),
        start=parse_datetime(start),
        duration=str(payload.get("duration") or ""),
        end=parse_optional_datetime(payload.get("end")),
    )


def load_sessions(path: Path) -> List[LoggedSession]:
    """Read logged sessions, newest first, from a JSON/YAML file."""
    try:
        items = load_object_list(path, key="sessions")
        sessions = [parse_session(item) for item in items]
    except (KeyError, ValueError) as exc:
        raise StoreError(f"Invalid sessions file {path}: {exc}") from exc
    sessions.sort(key=lambda session: session.start, reverse=True)
    return sessions


class ProfileDirectory:
    """Location profiles persisted as JSON, with optional address geocoding."""

    def __init__(self, path: Path, geocoder: Optional[GeocodingClient] = None) -> None:
        self.path = path
        self.geocoder = geocoder
        data = _read_json_object(path)
        self.last_used_location: Optional[str] = data.get("last_used") or None
        self.profiles: List[LocationProfile] = []
        for item in data.get("profiles", []):
            if not isinstance(item, dict) or not item.get("id"):
                continue
            address = str(item.get("address") or "").strip()
            self.profiles.append(
                LocationProfile(
                    id=str(item["id"]),
                    name=str(item.get("name") or DEFAULT_LOCATION_NAME),
                    coordinate=_coordinate_from(item),
                    address=address or None,
                )
            )

    def save(self) -> None:
        payload: Dict[str, Any] = {
            "profiles": [
                {
                    "id": profile.id,
                    "name": profile.name,
                    "address": profile.address,
                    "latitude": profile.coordinate.latitude if profile.coordinate else None,
                    "longitude": profile.coordinate.longitude if profile.coordinate else None,
                }
                for profile in self.profiles
            ],
            "last_used": self.last_used_location,
        }
        _write_json(self.path, payload)

    def get(self, profile_id: Optional[str]) -> Optional[LocationProfile]:
        if profile_id is None:
            return None
        for profile in self.profiles:
            if profile.id == profile_id:
                return profile
        return None

    def profile_name(self, profile_id: Optional[str]) -> Optional[str]:
        profile = self.get(profile_id)
        return profile.name if profile else None

    def set_last_used_location(self, profile_id: Optional[str]) -> None:
        self.last_used_location = profile_id
        self.save()

    def _replace(self, updated: LocationProfile) -> LocationProfile:
        self.profiles = [updated if profile.id == updated.id else profile for profile in self.profiles]
        return updated

    async def resolve_coordinates(self) -> Dict[str, Coordinate]:
        """Coordinates of every profile, geocoding (and saving) address-only ones."""
        resolved: Dict[str, Coordinate] = {}
        changed = False

        for profile in list(self.profiles):
            if profile.coordinate is not None:
                resolved[profile.id] = profile.coordinate
                continue
            if not profile.address or self.geocoder is None:
                continue

            pair = await asyncio.to_thread(self.geocoder.geocode, profile.address)
            if pair is None:
                logger.debug("Could not geocode %s (%s)", profile.name, profile.address)
                continue
            coordinate = Coordinate(*pair)
            self._replace(replace(profile, coordinate=coordinate))
            resolved[profile.id] = coordinate
            changed = True

        if changed:
            self.save()
        return resolved

    async def upsert_profile_from_manual_selection(
        self,
        name: str,
        address: Optional[str],
        coordinate: Coordinate,
        proximity_meters: float = MANUAL_SELECTION_PROXIMITY_METERS,
    ) -> str:
        """Update a matching profile with the chosen place, or create a new one.

        Matching order: a profile within ``proximity_meters`` of the chosen
        point, then one with the same address, then one with the same name
        that has no coordinate yet.
        """
        clean_name = name.strip()
        clean_address = (address or "").strip() or None

        match = next(
            (
                profile
                for profile in self.profiles
                if profile.coordinate is not None
                and haversine_meters(profile.coordinate, coordinate) <= proximity_meters
            ),
            None,
        )
        if match is None and clean_address:
            match = next(
                (p for p in self.profiles if _normalized(p.address) == _normalized(clean_address)),
                None,
            )
        if match is None and clean_name:
            match = next(
                (
                    p
                    for p in self.profiles
                    if _normalized(p.name) == _normalized(clean_name) and p.coordinate is None
                ),
                None,
            )

        if match is not None:
            updated = self._replace(
                replace(
                    match,
                    name=clean_name or match.name,
                    address=clean_address or match.address,
                    coordinate=coordinate,
                )
            )
        else:
            updated = LocationProfile(
                id=str(uuid.uuid4()),
                name=clean_name or DEFAULT_LOCATION_NAME,
                coordinate=coordinate,
                address=clean_address,
            )
            self.profiles.append(updated)

        self.save()
        return updated.id


class AnnotationStore:
    """Session to location tags persisted as JSON."""

    def __init__(self, path: Path) -> None:
        self.path = path
        data = _read_json_object(path)
        raw = data.get("assignments", {})
        self.assignments: Dict[str, str] = {
            str(session_id): str(location_id)
            for session_id, location_id in (raw.items() if isinstance(raw, dict) else [])
            if location_id
        }

    def assignment_for(self, session_id: str) -> Optional[str]:
        return self.assignments.get(session_id)

    async def apply_assignments(self, assignments: Mapping[str, str]) -> None:
        self.assignments.update(assignments)
        _write_json(self.path, {"assignments": self.assignments})


class FileSyncCache:
    """Route starts and record ids remembered from earlier health syncs."""

    def __init__(self, path: Path) -> None:
        self.path = path
        data = _read_json_object(path)
        self.entries: Dict[str, CacheEntry] = {}
        for session_id, item in data.items():
            if not isinstance(item, dict):
                continue
            pair = parse_coordinate_pair(item.get("route_start"))
            record_id = item.get("record_id")
            self.entries[str(session_id)] = CacheEntry(
                coordinate=Coordinate(*pair) if pair else None,
                record_id=str(record_id) if record_id else None,
            )

    def entry_for(self, session_id: str) -> Optional[CacheEntry]:
        return self.entries.get(session_id)


class LocalStore:
    """All file-backed collaborators rooted at one data directory."""

    def __init__(self, directory: Path, geocoder: Optional[GeocodingClient] = None) -> None:
        self.directory = directory
        self.sessions_path = directory / SESSIONS_FILE
        self.profiles = ProfileDirectory(directory / PROFILES_FILE, geocoder=geocoder)
        self.annotations = AnnotationStore(directory / ANNOTATIONS_FILE)
        self.cache = FileSyncCache(directory / SYNC_CACHE_FILE)

    def sessions(self) -> List[LoggedSession]:
        return load_sessions(self.sessions_path)

    def route_points(self) -> List[Tuple[Coordinate, datetime]]:
        """Cached route starts paired with their session's start, newest first."""
        points: List[Tuple[Coordinate, datetime]] = []
        for session in self.sessions():
            entry = self.cache.entry_for(session.id)
            if entry is not None and entry.coordinate is not None:
                points.append((entry.coordinate, session.start))
        return points
