"""Data models shared by the reconciliation pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from gymtag.core.constants import DEFAULT_DURATION_MINUTES
from gymtag.utils.parsing import estimated_duration_minutes


@dataclass(frozen=True)
class Coordinate:
    """A point in decimal degrees."""

    latitude: float
    longitude: float

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class TimeWindow:
    """Closed interval between two timezone-aware datetimes."""

    start: datetime
    end: datetime

    @property
    def duration_seconds(self) -> float:
        return max((self.end - self.start).total_seconds(), 0.0)

    def overlap_seconds(self, other: "TimeWindow") -> float:
        """Length of the intersection with ``other``, 0 when disjoint."""
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if end <= start:
            return 0.0
        return (end - start).total_seconds()

    def padded(self, seconds: float) -> "TimeWindow":
        delta = timedelta(seconds=seconds)
        return TimeWindow(start=self.start - delta, end=self.end + delta)

    @classmethod
    def spanning(cls, windows: Iterable["TimeWindow"]) -> "TimeWindow":
        items = list(windows)
        if not items:
            raise ValueError("cannot span an empty set of windows")
        return cls(
            start=min(window.start for window in items),
            end=max(window.end for window in items),
        )


@dataclass(frozen=True)
class LoggedSession:
    """A workout the user logged locally."""

    id: str
    name: str
    start: datetime
    duration: str = ""
    end: Optional[datetime] = None

    def estimated_window(self, default_minutes: int = DEFAULT_DURATION_MINUTES) -> TimeWindow:
        """Explicit [start, end] when known, else start plus the parsed duration."""
        if self.end is not None and self.end > self.start:
            return TimeWindow(start=self.start, end=self.end)
        minutes = max(1, estimated_duration_minutes(self.duration, default_minutes=default_minutes))
        return TimeWindow(start=self.start, end=self.start + timedelta(minutes=minutes))


@dataclass(frozen=True)
class ExternalRecord:
    """A workout known to the external health catalog."""

    id: str
    start: datetime
    end: datetime

    @property
    def window(self) -> TimeWindow:
        return TimeWindow(start=self.start, end=self.end)


@dataclass(frozen=True)
class LocationProfile:
    """A known place such as a gym."""

    id: str
    name: str
    coordinate: Optional[Coordinate] = None
    address: Optional[str] = None


@dataclass(frozen=True)
class CacheEntry:
    """Previously synced data for one logged session."""

    coordinate: Optional[Coordinate] = None
    record_id: Optional[str] = None


class SkipReason(str, enum.Enum):
    NO_MATCHING_RECORD = "no_matching_record"
    NO_ROUTE_LOCATION = "no_route_location"
    NO_NEARBY_LOCATION = "no_nearby_location"
    PROFILES_MISSING_LOCATION = "profiles_missing_location"


@dataclass(frozen=True)
class Assigned:
    location_id: str
    location_name: str
    distance_meters: float

    status = "assigned"


@dataclass(frozen=True)
class Skipped:
    reason: SkipReason
    message: str

    status = "skipped"


MatchOutcome = Union[Assigned, Skipped]


@dataclass(frozen=True)
class ReportItem:
    """Outcome for one target session."""

    session_id: str
    session_name: str
    session_date: datetime
    outcome: MatchOutcome

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "session_id": self.session_id,
            "session_name": self.session_name,
            "session_date": self.session_date.isoformat(),
            "status": self.outcome.status,
        }
        if isinstance(self.outcome, Assigned):
            payload["location_id"] = self.outcome.location_id
            payload["location_name"] = self.outcome.location_name
            payload["distance_meters"] = int(round(self.outcome.distance_meters))
        else:
            payload["reason"] = self.outcome.reason.value
            payload["message"] = self.outcome.message
        return payload


@dataclass(frozen=True)
class FallbackCandidate:
    """A session that needs manual, map-based location confirmation."""

    session_id: str
    session_name: str
    session_date: datetime
    coordinate: Optional[Coordinate] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "session_name": self.session_name,
            "session_date": self.session_date.isoformat(),
            "coordinate": self.coordinate.to_dict() if self.coordinate else None,
        }


@dataclass(frozen=True)
class RunReport:
    """Aggregated result of one reconciliation run."""

    attempted: int = 0
    assigned: int = 0
    skipped_no_matching_record: int = 0
    skipped_no_route_location: int = 0
    skipped_no_nearby_location: int = 0
    skipped_profiles_missing_location: int = 0
    route_permission_unavailable: bool = False
    items: Tuple[ReportItem, ...] = field(default_factory=tuple)

    def skipped_counts(self) -> Dict[SkipReason, int]:
        return {
            SkipReason.NO_MATCHING_RECORD: self.skipped_no_matching_record,
            SkipReason.NO_ROUTE_LOCATION: self.skipped_no_route_location,
            SkipReason.NO_NEARBY_LOCATION: self.skipped_no_nearby_location,
            SkipReason.PROFILES_MISSING_LOCATION: self.skipped_profiles_missing_location,
        }

    @property
    def skipped(self) -> int:
        return sum(self.skipped_counts().values())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "assigned": self.assigned,
            "skipped": {reason.value: count for reason, count in self.skipped_counts().items()},
            "route_permission_unavailable": self.route_permission_unavailable,
            "items": [item.to_dict() for item in self.items],
        }
