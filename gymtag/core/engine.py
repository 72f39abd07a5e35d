"""Run orchestration: tag logged sessions with the location they happened at.

A run walks the target sessions one at a time:

1. a coordinate remembered by an earlier sync is used as is;
2. otherwise the session is paired with a catalog record (a remembered record
   id wins, else the time-window matcher decides) and the record's route
   start is fetched, at most once per record per run;
3. the coordinate is matched against location profiles within the distance
   threshold.

Sessions that fall through any step are reported as skipped and queued for
manual resolution. All assignments are written in a single call at the end,
so an aborted run leaves no trace.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from gymtag.core.collaborators import (
    AssignmentStore,
    CatalogError,
    LocationDirectory,
    SyncCache,
    WorkoutCatalog,
)
from gymtag.core.config import MatchingSettings
from gymtag.core.constants import DEFAULT_LOCATION_NAME
from gymtag.core.context import ProgressCallback, RunContext
from gymtag.core.fallback import FallbackQueue
from gymtag.core.geo import nearest_location
from gymtag.core.matching import best_matching_record
from gymtag.core.models import (
    Assigned,
    Coordinate,
    ExternalRecord,
    FallbackCandidate,
    LoggedSession,
    MatchOutcome,
    ReportItem,
    RunReport,
    SkipReason,
    Skipped,
    TimeWindow,
)
from gymtag.core.report import build_report, skip_message
from gymtag.core.resolver import LocationResolver

logger = logging.getLogger(__name__)


class RunInProgressError(RuntimeError):
    """Raised when a run is started while another one is still going."""


@dataclass(frozen=True)
class RunOutcome:
    """What escapes a run: the report, the applied assignments and the fallback queue."""

    report: RunReport
    assignments: Dict[str, str] = field(default_factory=dict)
    fallback: FallbackQueue = field(default_factory=FallbackQueue)


def in_date_range(session: LoggedSession, start: Optional[date], end: Optional[date]) -> bool:
    day = session.start.date()
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


def select_targets(
    sessions: Iterable[LoggedSession],
    assignments: AssignmentStore,
    directory: LocationDirectory,
    selected_ids: Optional[Sequence[str]] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[LoggedSession]:
    """Sessions in scope whose tag is missing or points at a deleted location.

    The scope is the explicit selection when one is given, otherwise every
    session in the date range. Input order is preserved.
    """
    selected = set(selected_ids) if selected_ids else None
    targets: List[LoggedSession] = []
    for session in sessions:
        if selected is not None and session.id not in selected:
            continue
        if not in_date_range(session, start, end):
            continue
        location_id = assignments.assignment_for(session.id)
        if location_id is not None and directory.profile_name(location_id) is not None:
            continue
        targets.append(session)
    return targets


class ReconciliationEngine:
    """Orchestrates matching, location resolution and the final bulk assignment."""

    def __init__(
        self,
        catalog: WorkoutCatalog,
        directory: LocationDirectory,
        assignments: AssignmentStore,
        cache: SyncCache,
        settings: Optional[MatchingSettings] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.catalog = catalog
        self.directory = directory
        self.assignments = assignments
        self.cache = cache
        self.settings = settings or MatchingSettings()
        self.on_progress = on_progress
        self.resolver = LocationResolver(catalog)
        self.progress = 0.0
        self.fallback = FallbackQueue()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _publish_progress(self, value: float) -> None:
        self.progress = value
        if self.on_progress is not None:
            self.on_progress(value)

    async def run(self, targets: Sequence[LoggedSession], relaxed: Optional[bool] = None) -> RunOutcome:
        """Reconcile ``targets`` and apply the resulting assignments in one write."""
        if self._running:
            raise RunInProgressError("A reconciliation run is already in progress")

        sessions = _unique_sessions(targets)
        if not sessions:
            self.fallback = FallbackQueue()
            return RunOutcome(report=build_report([]), fallback=self.fallback)

        settings = self.settings
        if relaxed is not None and relaxed != settings.relaxed:
            settings = replace(settings, relaxed=relaxed)

        self._running = True
        try:
            return await self._run(sessions, settings)
        finally:
            self._running = False

    async def _run(self, sessions: List[LoggedSession], settings: MatchingSettings) -> RunOutcome:
        self.progress = 0.0
        context = RunContext(settings=settings, total=len(sessions), on_progress=self._publish_progress)
        logger.info("Starting reconciliation for %d sessions", len(sessions))

        await self.catalog.request_catalog_authorization()
        try:
            await self.catalog.request_route_authorization()
        except CatalogError as exc:
            logger.warning("Route authorization unavailable, continuing without it: %s", exc)
            context.mark_route_permission_unavailable()

        profile_coordinates = await self.directory.resolve_coordinates()

        window = TimeWindow.spanning(
            session.estimated_window(settings.default_duration_minutes) for session in sessions
        ).padded(settings.query_padding_seconds)
        records = await self.catalog.query_records(window)
        logger.debug(
            "Catalog returned %d records for %s .. %s",
            len(records),
            window.start.isoformat(),
            window.end.isoformat(),
        )

        for index, session in enumerate(sessions):
            context.publish_progress(index / len(sessions))
            outcome, coordinate = await self._reconcile_session(
                context, session, records, profile_coordinates
            )
            context.items.append(
                ReportItem(
                    session_id=session.id,
                    session_name=session.name,
                    session_date=session.start,
                    outcome=outcome,
                )
            )
            if isinstance(outcome, Skipped):
                logger.debug("Skipped %s (%s): %s", session.id, session.name, outcome.message)
                context.fallback.add(
                    FallbackCandidate(
                        session_id=session.id,
                        session_name=session.name,
                        session_date=session.start,
                        coordinate=coordinate,
                    )
                )
            else:
                logger.debug(
                    "Assigned %s to %s (%.0fm)",
                    session.id,
                    outcome.location_name,
                    outcome.distance_meters,
                )

        context.publish_progress(1.0)

        if context.assignments:
            await self.assignments.apply_assignments(dict(context.assignments))
            self.directory.set_last_used_location(_latest_assigned_location(context.items))

        report = build_report(context.items, context.route_permission_unavailable)
        self.fallback = context.fallback
        logger.info(
            "Reconciliation finished: %d attempted, %d assigned, %d queued for manual review",
            report.attempted,
            report.assigned,
            len(context.fallback),
        )
        return RunOutcome(report=report, assignments=dict(context.assignments), fallback=context.fallback)

    async def _reconcile_session(
        self,
        context: RunContext,
        session: LoggedSession,
        records: Sequence[ExternalRecord],
        profile_coordinates: Mapping[str, Coordinate],
    ) -> Tuple[MatchOutcome, Optional[Coordinate]]:
        settings = context.settings
        cache_entry = self.cache.entry_for(session.id)

        if cache_entry is not None and cache_entry.coordinate is not None:
            coordinate: Optional[Coordinate] = cache_entry.coordinate
        else:
            record = best_matching_record(
                session.estimated_window(settings.default_duration_minutes),
                records,
                strict_tolerance_seconds=settings.strict_tolerance_seconds,
                relaxed_tolerance_seconds=settings.relaxed_tolerance_seconds,
                relaxed=settings.relaxed,
                overlap_weight=settings.overlap_weight,
                preferred_id=cache_entry.record_id if cache_entry is not None else None,
            )
            if record is None:
                return self._skipped(context, SkipReason.NO_MATCHING_RECORD), None

            coordinate = await self.resolver.resolve(context, record, cache_entry)
            if coordinate is None:
                return self._skipped(context, SkipReason.NO_ROUTE_LOCATION), None

        if not profile_coordinates:
            return self._skipped(context, SkipReason.PROFILES_MISSING_LOCATION), coordinate

        match = nearest_location(coordinate, profile_coordinates, settings.max_distance_meters)
        if match is None:
            return self._skipped(context, SkipReason.NO_NEARBY_LOCATION), coordinate

        name = self.directory.profile_name(match.location_id) or DEFAULT_LOCATION_NAME
        context.assignments[session.id] = match.location_id
        return (
            Assigned(
                location_id=match.location_id,
                location_name=name,
                distance_meters=match.distance_meters,
            ),
            coordinate,
        )

    @staticmethod
    def _skipped(context: RunContext, reason: SkipReason) -> Skipped:
        return Skipped(
            reason=reason,
            message=skip_message(
                reason,
                max_distance_meters=context.settings.max_distance_meters,
                route_permission_unavailable=context.route_permission_unavailable,
            ),
        )


def _latest_assigned_location(items: Sequence[ReportItem]) -> Optional[str]:
    latest: Optional[ReportItem] = None
    for item in items:
        if not isinstance(item.outcome, Assigned):
            continue
        if latest is None or item.session_date > latest.session_date:
            latest = item
    if latest is None or not isinstance(latest.outcome, Assigned):
        return None
    return latest.outcome.location_id


def _unique_sessions(targets: Iterable[LoggedSession]) -> List[LoggedSession]:
    seen = set()
    unique: List[LoggedSession] = []
    for session in targets:
        if session.id in seen:
            continue
        seen.add(session.id)
        unique.append(session)
    return unique
