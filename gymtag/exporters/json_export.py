"""JSON export helpers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from gymtag.core.fallback import FallbackQueue


def write_json(path: Path, payload: Any) -> Path:
    """Write payload as pretty JSON and return path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n")
    return path


def write_fallback(path: Path, queue: FallbackQueue) -> Path:
    """Persist the fallback queue so ``resolve`` can pick it up later."""
    return write_json(path, {"sessions": queue.to_list()})


def read_fallback(path: Path) -> FallbackQueue:
    if not path.exists():
        return FallbackQueue()
    payload = json.loads(path.read_text() or "{}")
    return FallbackQueue.from_list(payload.get("sessions", []))
