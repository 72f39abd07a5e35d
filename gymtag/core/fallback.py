"""Queue of sessions that need manual, map-based location confirmation."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from gymtag.core.collaborators import AssignmentStore, LocationDirectory
from gymtag.core.models import Coordinate, FallbackCandidate
from gymtag.utils.parsing import parse_coordinate_pair, parse_datetime

logger = logging.getLogger(__name__)


class FallbackQueue:
    """Fallback candidates keyed by session id; the first entry for a session wins."""

    def __init__(self, candidates: Iterable[FallbackCandidate] = ()) -> None:
        self._candidates: Dict[str, FallbackCandidate] = {}
        for candidate in candidates:
            self.add(candidate)

    def __len__(self) -> int:
        return len(self._candidates)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._candidates

    def add(self, candidate: FallbackCandidate) -> bool:
        """Queue a candidate; returns False when the session is already queued."""
        if candidate.session_id in self._candidates:
            return False
        self._candidates[candidate.session_id] = candidate
        return True

    def get(self, session_id: str) -> Optional[FallbackCandidate]:
        return self._candidates.get(session_id)

    def remove(self, session_id: str) -> FallbackCandidate:
        return self._candidates.pop(session_id)

    def ordered(self) -> List[FallbackCandidate]:
        """All candidates, newest session first."""
        return sorted(self._candidates.values(), key=lambda item: item.session_date, reverse=True)

    def displayed(self, limit: Optional[int]) -> List[FallbackCandidate]:
        ordered = self.ordered()
        if limit is None or limit < 0:
            return ordered
        return ordered[:limit]

    def to_list(self) -> List[Dict[str, object]]:
        return [candidate.to_dict() for candidate in self.ordered()]

    @classmethod
    def from_list(cls, payload: Iterable[Dict[str, object]]) -> "FallbackQueue":
        candidates = []
        for item in payload:
            pair = parse_coordinate_pair(item.get("coordinate"))
            candidates.append(
                FallbackCandidate(
                    session_id=str(item["session_id"]),
                    session_name=str(item.get("session_name") or ""),
                    session_date=parse_datetime(item["session_date"]),
                    coordinate=Coordinate(*pair) if pair else None,
                )
            )
        return cls(candidates)


async def resolve_fallback(
    queue: FallbackQueue,
    session_id: str,
    location_id: str,
    assignments: AssignmentStore,
    directory: Optional[LocationDirectory] = None,
) -> FallbackCandidate:
    """Apply a manually chosen location to one queued session and dequeue it."""
    candidate = queue.get(session_id)
    if candidate is None:
        raise KeyError(f"Session {session_id} is not in the fallback queue")

    await assignments.apply_assignments({session_id: location_id})
    if directory is not None:
        directory.set_last_used_location(location_id)
    queue.remove(session_id)
    logger.info("Resolved fallback session %s -> location %s", session_id, location_id)
    return candidate


async def resolve_fallback_selection(
    queue: FallbackQueue,
    session_id: str,
    name: str,
    address: Optional[str],
    coordinate: Coordinate,
    assignments: AssignmentStore,
    directory: LocationDirectory,
) -> str:
    """Turn a map selection into a profile and resolve the session with it."""
    if session_id not in queue:
        raise KeyError(f"Session {session_id} is not in the fallback queue")
    location_id = await directory.upsert_profile_from_manual_selection(name, address, coordinate)
    await resolve_fallback(queue, session_id, location_id, assignments, directory)
    return location_id
