"""Per-run state passed explicitly through the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from gymtag.core.config import MatchingSettings
from gymtag.core.fallback import FallbackQueue
from gymtag.core.models import Coordinate, ReportItem

ProgressCallback = Callable[[float], None]


@dataclass
class RunContext:
    """Everything one reconciliation run owns; discarded when the run ends."""

    settings: MatchingSettings
    total: int = 0
    progress: float = 0.0
    on_progress: Optional[ProgressCallback] = None
    route_permission_unavailable: bool = False
    route_starts: Dict[str, Optional[Coordinate]] = field(default_factory=dict)
    assignments: Dict[str, str] = field(default_factory=dict)
    items: List[ReportItem] = field(default_factory=list)
    fallback: FallbackQueue = field(default_factory=FallbackQueue)

    def publish_progress(self, value: float) -> None:
        """Move progress forward; values below the current one are ignored."""
        value = min(max(value, 0.0), 1.0)
        if value < self.progress:
            return
        self.progress = value
        if self.on_progress is not None:
            self.on_progress(value)

    def mark_route_permission_unavailable(self) -> None:
        self.route_permission_unavailable = True
