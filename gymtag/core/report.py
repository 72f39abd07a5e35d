"""Aggregation of per-session outcomes into a run report."""

from __future__ import annotations

from collections import Counter
from typing import Sequence

from gymtag.core.constants import ROUTE_PERMISSION_SUFFIX, SKIP_REASON_LABELS
from gymtag.core.models import Assigned, ReportItem, RunReport, SkipReason, Skipped


def skip_message(
    reason: SkipReason,
    max_distance_meters: float = 250.0,
    route_permission_unavailable: bool = False,
) -> str:
    """User-facing text for a skip reason."""
    message = SKIP_REASON_LABELS[reason.value].format(max_distance=int(max_distance_meters))
    if reason is SkipReason.NO_ROUTE_LOCATION and route_permission_unavailable:
        message += ROUTE_PERMISSION_SUFFIX
    return message


def build_report(items: Sequence[ReportItem], route_permission_unavailable: bool = False) -> RunReport:
    """Count outcomes and order items newest session first."""
    assigned = 0
    skipped: Counter = Counter()

    for item in items:
        outcome = item.outcome
        if isinstance(outcome, Assigned):
            assigned += 1
        elif isinstance(outcome, Skipped):
            skipped[outcome.reason] += 1
        else:
            raise TypeError(f"Unknown match outcome: {outcome!r}")

    ordered = sorted(items, key=lambda item: item.session_date, reverse=True)
    return RunReport(
        attempted=len(items),
        assigned=assigned,
        skipped_no_matching_record=skipped[SkipReason.NO_MATCHING_RECORD],
        skipped_no_route_location=skipped[SkipReason.NO_ROUTE_LOCATION],
        skipped_no_nearby_location=skipped[SkipReason.NO_NEARBY_LOCATION],
        skipped_profiles_missing_location=skipped[SkipReason.PROFILES_MISSING_LOCATION],
        route_permission_unavailable=route_permission_unavailable,
        items=tuple(ordered),
    )
