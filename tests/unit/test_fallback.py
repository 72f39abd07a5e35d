from __future__ import annotations

import pytest

from gymtag.core.fallback import FallbackQueue, resolve_fallback, resolve_fallback_selection
from gymtag.core.models import FallbackCandidate
from tests.fakes import GYM, NEAR_GYM, FakeAssignments, FakeDirectory, at


def _candidate(session_id: str, minutes: float = 0, coordinate=None) -> FallbackCandidate:
    return FallbackCandidate(session_id, f"Session {session_id}", at(minutes), coordinate)


def test_add_is_idempotent_first_wins() -> None:
    queue = FallbackQueue()
    assert queue.add(_candidate("s1", coordinate=GYM)) is True
    assert queue.add(_candidate("s1", coordinate=None)) is False
    assert len(queue) == 1
    assert queue.get("s1").coordinate == GYM


def test_ordered_newest_first_and_display_cap() -> None:
    queue = FallbackQueue([_candidate(f"s{i}", minutes=i * 60) for i in range(30)])
    ordered = queue.ordered()
    assert ordered[0].session_id == "s29"
    assert ordered[-1].session_id == "s0"
    assert len(queue.displayed(25)) == 25
    assert len(queue.displayed(None)) == 30
    assert len(queue) == 30


def test_list_round_trip_keeps_coordinates() -> None:
    queue = FallbackQueue([_candidate("s1", coordinate=NEAR_GYM), _candidate("s2", minutes=5)])
    restored = FallbackQueue.from_list(queue.to_list())
    assert restored.get("s1").coordinate == NEAR_GYM
    assert restored.get("s2").coordinate is None
    assert restored.get("s1").session_date == at(0)


@pytest.mark.asyncio
async def test_resolve_fallback_applies_single_assignment() -> None:
    queue = FallbackQueue([_candidate("s1"), _candidate("s2")])
    assignments = FakeAssignments()
    directory = FakeDirectory({"gym": ("Iron Gym", GYM)})

    await resolve_fallback(queue, "s1", "gym", assignments, directory)

    assert assignments.apply_calls == [{"s1": "gym"}]
    assert directory.last_used == ["gym"]
    assert "s1" not in queue
    assert "s2" in queue


@pytest.mark.asyncio
async def test_resolve_unknown_session_raises() -> None:
    assignments = FakeAssignments()
    with pytest.raises(KeyError):
        await resolve_fallback(FallbackQueue(), "missing", "gym", assignments)
    assert assignments.apply_calls == []


@pytest.mark.asyncio
async def test_resolve_selection_upserts_then_assigns() -> None:
    queue = FallbackQueue([_candidate("s1", coordinate=NEAR_GYM)])
    assignments = FakeAssignments()
    directory = FakeDirectory()

    location_id = await resolve_fallback_selection(
        queue, "s1", "Climbing Hall", "Main St 1", NEAR_GYM, assignments, directory
    )

    assert directory.upserts == [("Climbing Hall", "Main St 1", NEAR_GYM)]
    assert assignments.apply_calls == [{"s1": location_id}]
    assert len(queue) == 0
