from __future__ import annotations

import asyncio
from datetime import date

import pytest

from gymtag.core.catalog import HttpWorkoutCatalog
from gymtag.core.collaborators import AuthorizationError, CatalogError
from gymtag.core.config import MatchingSettings
from gymtag.core.engine import ReconciliationEngine, RunInProgressError, select_targets
from gymtag.core.models import Assigned, CacheEntry, SkipReason, Skipped
from tests.fakes import (
    FAR_AWAY,
    GYM,
    NEAR_GYM,
    FakeAssignments,
    FakeCache,
    FakeCatalog,
    FakeDirectory,
    record,
    session,
)


def _engine(catalog=None, directory=None, assignments=None, cache=None, **kwargs) -> ReconciliationEngine:
    return ReconciliationEngine(
        catalog=catalog or FakeCatalog(),
        directory=directory or FakeDirectory({"gym": ("Iron Gym", GYM)}),
        assignments=assignments or FakeAssignments(),
        cache=cache or FakeCache(),
        **kwargs,
    )


def _outcomes(report):
    return {item.session_id: item.outcome for item in report.items}


@pytest.mark.asyncio
async def test_scenario_a_assigns_nearby_location() -> None:
    catalog = FakeCatalog(records=[record("r1", minutes=5, length_minutes=65)], route_starts={"r1": NEAR_GYM})
    assignments = FakeAssignments()
    directory = FakeDirectory({"gym": ("Iron Gym", GYM)})
    engine = _engine(catalog, directory, assignments)

    outcome = await engine.run([session("s1")])

    result = _outcomes(outcome.report)["s1"]
    assert isinstance(result, Assigned)
    assert result.location_id == "gym"
    assert result.location_name == "Iron Gym"
    assert result.distance_meters == pytest.approx(111, abs=1)
    assert outcome.report.assigned == 1
    assert assignments.apply_calls == [{"s1": "gym"}]
    assert directory.last_used == ["gym"]
    assert len(outcome.fallback) == 0


@pytest.mark.asyncio
async def test_scenario_b_no_matching_record_goes_to_fallback() -> None:
    catalog = FakeCatalog(records=[record("r1", minutes=13 * 60)])
    assignments = FakeAssignments()
    engine = _engine(catalog, assignments=assignments)

    outcome = await engine.run([session("s2")], relaxed=True)

    result = _outcomes(outcome.report)["s2"]
    assert isinstance(result, Skipped)
    assert result.reason is SkipReason.NO_MATCHING_RECORD
    assert result.message == "No matching workout in the health catalog"
    assert outcome.report.skipped_no_matching_record == 1
    assert outcome.fallback.get("s2").coordinate is None
    assert assignments.apply_calls == []
    assert catalog.fetches == []


@pytest.mark.asyncio
async def test_scenario_c_route_permission_denied() -> None:
    catalog = FakeCatalog(records=[record("r1")], route_starts={"r1": NEAR_GYM}, deny_routes=True)
    engine = _engine(catalog)

    outcome = await engine.run([session("s3")])

    result = _outcomes(outcome.report)["s3"]
    assert isinstance(result, Skipped)
    assert result.reason is SkipReason.NO_ROUTE_LOCATION
    assert result.message.endswith("(route permission unavailable)")
    assert outcome.report.route_permission_unavailable is True
    assert "s3" in outcome.fallback


@pytest.mark.asyncio
async def test_scenario_d_profiles_missing_location() -> None:
    catalog = FakeCatalog(
        records=[record("r1"), record("r2", minutes=180)],
        route_starts={"r1": NEAR_GYM, "r2": GYM},
    )
    directory = FakeDirectory({"gym": ("Iron Gym", None)})
    engine = _engine(catalog, directory)

    outcome = await engine.run([session("s1"), session("s2", minutes=180)])

    assert outcome.report.skipped_profiles_missing_location == 2
    assert outcome.report.assigned == 0
    assert outcome.fallback.get("s1").coordinate == NEAR_GYM
    assert [c.session_id for c in outcome.fallback.ordered()] == ["s2", "s1"]


@pytest.mark.asyncio
async def test_no_nearby_location_message_uses_threshold() -> None:
    catalog = FakeCatalog(records=[record("r1")], route_starts={"r1": FAR_AWAY})
    engine = _engine(catalog)

    outcome = await engine.run([session("s1")])

    result = _outcomes(outcome.report)["s1"]
    assert result.reason is SkipReason.NO_NEARBY_LOCATION
    assert result.message == "No location within 250m"


@pytest.mark.asyncio
async def test_cached_coordinate_skips_catalog_lookups() -> None:
    catalog = FakeCatalog(records=[record("r1")], route_starts={"r1": FAR_AWAY})
    cache = FakeCache({"s1": CacheEntry(coordinate=NEAR_GYM)})
    engine = _engine(catalog, cache=cache)

    outcome = await engine.run([session("s1", minutes=5000)])

    assert isinstance(_outcomes(outcome.report)["s1"], Assigned)
    assert catalog.fetches == []


@pytest.mark.asyncio
async def test_cached_coordinate_used_when_route_authorization_denied() -> None:
    catalog = FakeCatalog(records=[record("r1")], route_starts={"r1": FAR_AWAY}, deny_routes=True)
    cache = FakeCache({"s1": CacheEntry(coordinate=NEAR_GYM)})
    assignments = FakeAssignments()
    engine = _engine(catalog, assignments=assignments, cache=cache)

    outcome = await engine.run([session("s1")])

    result = _outcomes(outcome.report)["s1"]
    assert isinstance(result, Assigned)
    assert result.location_id == "gym"
    assert catalog.fetches == []
    assert outcome.report.route_permission_unavailable is True
    assert assignments.apply_calls == [{"s1": "gym"}]


@pytest.mark.asyncio
async def test_cached_record_id_overrides_time_matching() -> None:
    catalog = FakeCatalog(
        records=[record("close"), record("remembered", minutes=300)],
        route_starts={"close": FAR_AWAY, "remembered": NEAR_GYM},
    )
    cache = FakeCache({"s1": CacheEntry(record_id="remembered")})
    engine = _engine(catalog, cache=cache)

    outcome = await engine.run([session("s1")])

    assert isinstance(_outcomes(outcome.report)["s1"], Assigned)
    assert catalog.fetches == ["remembered"]


@pytest.mark.asyncio
async def test_route_start_fetched_once_per_record() -> None:
    catalog = FakeCatalog(records=[record("r1", length_minutes=240)], route_starts={"r1": NEAR_GYM})
    targets = [session(f"s{i}", minutes=i * 5) for i in range(4)]
    engine = _engine(catalog)

    outcome = await engine.run(targets)

    assert outcome.report.assigned == 4
    assert catalog.fetches == ["r1"]


@pytest.mark.asyncio
async def test_missing_route_is_memoised_too() -> None:
    catalog = FakeCatalog(records=[record("r1", length_minutes=240)], route_starts={})
    engine = _engine(catalog)

    outcome = await engine.run([session("s1"), session("s2", minutes=10)])

    assert outcome.report.skipped_no_route_location == 2
    assert catalog.fetches == ["r1"]
    assert outcome.report.route_permission_unavailable is False


@pytest.mark.asyncio
async def test_single_query_and_single_apply() -> None:
    catalog = FakeCatalog(
        records=[record("r1"), record("r2", minutes=600)],
        route_starts={"r1": NEAR_GYM, "r2": GYM},
    )
    assignments = FakeAssignments()
    directory = FakeDirectory({"gym": ("Iron Gym", GYM)})
    engine = _engine(catalog, directory, assignments)

    await engine.run([session("s1"), session("s2", minutes=600)])

    assert len(catalog.queries) == 1
    window = catalog.queries[0]
    assert window.start <= session("s1").start
    assert window.end >= session("s2", minutes=600).estimated_window().end
    assert assignments.apply_calls == [{"s1": "gym", "s2": "gym"}]
    assert directory.resolve_calls == 1
    # The newest assigned session decides the hint.
    assert directory.last_used == ["gym"]


@pytest.mark.asyncio
async def test_authorization_failure_aborts_without_side_effects() -> None:
    catalog = FakeCatalog(records=[record("r1")], deny_catalog=True)
    assignments = FakeAssignments()
    directory = FakeDirectory({"gym": ("Iron Gym", GYM)})
    engine = _engine(catalog, directory, assignments)

    with pytest.raises(AuthorizationError):
        await engine.run([session("s1")])

    assert catalog.queries == []
    assert assignments.apply_calls == []
    assert directory.last_used == []
    assert engine.is_running is False


@pytest.mark.asyncio
async def test_query_failure_aborts_without_side_effects() -> None:
    catalog = FakeCatalog(fail_query=True)
    assignments = FakeAssignments()
    engine = _engine(catalog, assignments=assignments)

    with pytest.raises(CatalogError):
        await engine.run([session("s1")])

    assert assignments.apply_calls == []


@pytest.mark.asyncio
async def test_empty_targets_touch_nothing() -> None:
    catalog = FakeCatalog()
    directory = FakeDirectory()
    engine = _engine(catalog, directory)

    outcome = await engine.run([])

    assert outcome.report.attempted == 0
    assert catalog.queries == []
    assert directory.resolve_calls == 0


@pytest.mark.asyncio
async def test_empty_run_clears_previous_fallback() -> None:
    engine = _engine(FakeCatalog())

    first = await engine.run([session("s1")])
    assert "s1" in first.fallback
    assert "s1" in engine.fallback

    second = await engine.run([])

    assert len(second.fallback) == 0
    assert len(engine.fallback) == 0


@pytest.mark.asyncio
async def test_malformed_route_payload_skips_session() -> None:
    class MalformedRouteAPI:
        def authorize_workouts(self):
            return None

        def authorize_routes(self):
            return None

        def get_workouts(self, start, end):
            return [{"id": "r1", "start": "2026-03-02T18:05:00Z", "end": "2026-03-02T19:00:00Z"}]

        def get_route_start(self, workout_id):
            return {"latitude": {"deg": 52.5}, "longitude": {"deg": 13.4}}

    assignments = FakeAssignments()
    engine = _engine(HttpWorkoutCatalog(MalformedRouteAPI()), assignments=assignments)  # type: ignore[arg-type]

    outcome = await engine.run([session("s1")])

    result = _outcomes(outcome.report)["s1"]
    assert isinstance(result, Skipped)
    assert result.reason is SkipReason.NO_ROUTE_LOCATION
    assert "s1" in outcome.fallback
    assert assignments.apply_calls == []


@pytest.mark.asyncio
async def test_duplicate_targets_are_reported_once() -> None:
    catalog = FakeCatalog(records=[record("r1")], route_starts={"r1": NEAR_GYM})
    engine = _engine(catalog)

    outcome = await engine.run([session("s1"), session("s1")])

    assert outcome.report.attempted == 1
    assert len(outcome.report.items) == 1


@pytest.mark.asyncio
async def test_progress_is_monotonic_and_ends_at_one() -> None:
    seen = []
    catalog = FakeCatalog(records=[record("r1")], route_starts={"r1": NEAR_GYM})
    engine = _engine(catalog, on_progress=seen.append)

    await engine.run([session("s1"), session("s2", minutes=60), session("s3", minutes=120)])

    assert seen == sorted(seen)
    assert seen[0] == 0.0
    assert seen[-1] == 1.0
    assert engine.progress == 1.0


@pytest.mark.asyncio
async def test_concurrent_run_is_rejected() -> None:
    gate = asyncio.Event()

    class SlowCatalog(FakeCatalog):
        async def request_catalog_authorization(self) -> None:
            await gate.wait()

    engine = _engine(SlowCatalog())
    first = asyncio.ensure_future(engine.run([session("s1")]))
    await asyncio.sleep(0)
    assert engine.is_running

    with pytest.raises(RunInProgressError):
        await engine.run([session("s2")])

    gate.set()
    await first
    assert engine.is_running is False


@pytest.mark.asyncio
async def test_strict_setting_from_constructor_and_relaxed_override() -> None:
    catalog = FakeCatalog(records=[record("r1", minutes=90)], route_starts={"r1": NEAR_GYM})
    engine = _engine(catalog, settings=MatchingSettings(relaxed=False))

    strict = await engine.run([session("s1")])
    relaxed = await engine.run([session("s1")], relaxed=True)

    assert strict.report.skipped_no_matching_record == 1
    assert relaxed.report.assigned == 1


@pytest.mark.asyncio
async def test_rerun_after_tagging_attempts_nothing() -> None:
    catalog = FakeCatalog(records=[record("r1")], route_starts={"r1": NEAR_GYM})
    assignments = FakeAssignments()
    directory = FakeDirectory({"gym": ("Iron Gym", GYM)})
    engine = _engine(catalog, directory, assignments)
    sessions = [session("s1")]

    first = await engine.run(select_targets(sessions, assignments, directory))
    second = await engine.run(select_targets(sessions, assignments, directory))

    assert first.report.assigned == 1
    assert second.report.attempted == 0
    assert len(assignments.apply_calls) == 1


def test_select_targets_includes_dangling_tags_and_filters_scope() -> None:
    directory = FakeDirectory({"gym": ("Iron Gym", GYM)})
    assignments = FakeAssignments({"tagged": "gym", "dangling": "deleted"})
    sessions = [
        session("tagged"),
        session("dangling", minutes=60),
        session("fresh", minutes=120),
        session("old", minutes=-3 * 24 * 60),
    ]

    assert [s.id for s in select_targets(sessions, assignments, directory)] == ["dangling", "fresh", "old"]
    assert [
        s.id for s in select_targets(sessions, assignments, directory, start=date(2026, 3, 1))
    ] == ["dangling", "fresh"]
    assert [
        s.id for s in select_targets(sessions, assignments, directory, selected_ids=["fresh", "tagged"])
    ] == ["fresh"]
