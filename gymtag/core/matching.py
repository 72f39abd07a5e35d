"""Time-window matching of logged sessions against catalog records."""

from __future__ import annotations

from typing import Optional, Sequence

from gymtag.core.constants import OVERLAP_WEIGHT, RELAXED_TOLERANCE_SECONDS, STRICT_TOLERANCE_SECONDS
from gymtag.core.models import ExternalRecord, TimeWindow


def match_score(window: TimeWindow, record: ExternalRecord, overlap_weight: float = OVERLAP_WEIGHT) -> float:
    """Lower is better: start distance minus a bonus for overlapping time."""
    start_diff = abs((record.start - window.start).total_seconds())
    return start_diff - overlap_weight * window.overlap_seconds(record.window)


def _best_within(
    window: TimeWindow,
    candidates: Sequence[ExternalRecord],
    tolerance_seconds: float,
    overlap_weight: float,
) -> Optional[ExternalRecord]:
    best: Optional[ExternalRecord] = None
    best_score = float("inf")

    for candidate in candidates:
        start_diff = abs((candidate.start - window.start).total_seconds())
        if start_diff > tolerance_seconds:
            continue
        score = match_score(window, candidate, overlap_weight)
        # Strict comparison keeps the first candidate on ties.
        if score < best_score:
            best_score = score
            best = candidate

    return best


def best_matching_record(
    window: TimeWindow,
    candidates: Sequence[ExternalRecord],
    strict_tolerance_seconds: float = STRICT_TOLERANCE_SECONDS,
    relaxed_tolerance_seconds: float = RELAXED_TOLERANCE_SECONDS,
    relaxed: bool = False,
    overlap_weight: float = OVERLAP_WEIGHT,
    preferred_id: Optional[str] = None,
) -> Optional[ExternalRecord]:
    """Pick the catalog record that best explains a session's estimated window.

    A ``preferred_id`` found among the candidates (a record id remembered by
    an earlier sync) wins outright. Otherwise candidates whose start lies
    within the strict tolerance of the window start are scored; the relaxed
    tolerance is only consulted when ``relaxed`` is set and nothing passed the
    strict check.
    """
    if preferred_id is not None:
        for candidate in candidates:
            if candidate.id == preferred_id:
                return candidate

    best = _best_within(window, candidates, strict_tolerance_seconds, overlap_weight)
    if best is None and relaxed:
        best = _best_within(window, candidates, relaxed_tolerance_seconds, overlap_weight)
    return best
