"""Suggest new locations from where past workouts started."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Sequence, Tuple

from gymtag.core.constants import CLUSTER_RADIUS_METERS, MIN_CLUSTER_VISITS
from gymtag.core.geo import haversine_meters
from gymtag.core.models import Coordinate, LocationProfile


@dataclass
class _Cluster:
    center: Coordinate
    count: int
    latest: datetime

    def add(self, point: Coordinate, when: datetime) -> None:
        total = self.count + 1
        self.center = Coordinate(
            latitude=(self.center.latitude * self.count + point.latitude) / total,
            longitude=(self.center.longitude * self.count + point.longitude) / total,
        )
        self.count = total
        if when > self.latest:
            self.latest = when


@dataclass(frozen=True)
class DetectedLocation:
    name: str
    coordinate: Coordinate
    visit_count: int
    latest_session_date: datetime

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "coordinate": self.coordinate.to_dict(),
            "visit_count": self.visit_count,
            "latest_session_date": self.latest_session_date.isoformat(),
        }


def cluster_points(
    points: Iterable[Tuple[Coordinate, datetime]],
    radius_meters: float = CLUSTER_RADIUS_METERS,
) -> List[_Cluster]:
    """Greedy clustering: each point joins the first cluster whose centre is in range."""
    clusters: List[_Cluster] = []
    for coordinate, when in points:
        for cluster in clusters:
            if haversine_meters(cluster.center, coordinate) <= radius_meters:
                cluster.add(coordinate, when)
                break
        else:
            clusters.append(_Cluster(center=coordinate, count=1, latest=when))
    return clusters


def discover_locations(
    points: Sequence[Tuple[Coordinate, datetime]],
    existing_profiles: Sequence[LocationProfile],
    radius_meters: float = CLUSTER_RADIUS_METERS,
    min_visits: int = MIN_CLUSTER_VISITS,
) -> List[DetectedLocation]:
    """Frequently visited start points that no existing profile covers yet."""
    if not points:
        return []

    existing: List[Coordinate] = [
        profile.coordinate for profile in existing_profiles if profile.coordinate is not None
    ]

    def is_known(center: Coordinate) -> bool:
        return any(haversine_meters(known, center) <= radius_meters for known in existing)

    clusters = [
        cluster
        for cluster in cluster_points(points, radius_meters=radius_meters)
        if cluster.count >= min_visits and not is_known(cluster.center)
    ]
    clusters.sort(key=lambda cluster: (cluster.count, cluster.latest), reverse=True)

    return [
        DetectedLocation(
            name=f"Detected Location {index}",
            coordinate=cluster.center,
            visit_count=cluster.count,
            latest_session_date=cluster.latest,
        )
        for index, cluster in enumerate(clusters, start=1)
    ]
