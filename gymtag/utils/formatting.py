"""Formatting helpers used by exports and console output."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from gymtag.core.models import Assigned, Coordinate, ReportItem


def format_distance(meters: Optional[float]) -> str:
    """Format a distance in whole meters, or kilometers past 1 km."""
    if meters is None:
        return "-"
    if meters >= 1000:
        return f"{float(meters) / 1000:.1f} km"
    return f"{int(round(meters))} m"


def format_date(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M")


def format_coordinate(coordinate: Optional[Coordinate]) -> str:
    if coordinate is None:
        return "-"
    return f"{coordinate.latitude:.5f}, {coordinate.longitude:.5f}"


def describe_outcome(item: ReportItem) -> str:
    """One-line human description of what happened to a session."""
    outcome = item.outcome
    if isinstance(outcome, Assigned):
        return f"{outcome.location_name} ({format_distance(outcome.distance_meters)})"
    return outcome.message
