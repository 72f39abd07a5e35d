"""Parsing helpers for session, profile and catalog payloads."""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

_HOURS_RE = re.compile(r"(\d+)\s*h")
_MINUTES_RE = re.compile(r"(\d+)\s*m")


def estimated_duration_minutes(value: Optional[str], default_minutes: int = 60) -> int:
    """Parse a user-facing duration string ("1h 15m", "01:15:00", "45") into minutes."""
    trimmed = (value or "").strip().lower()
    if not trimmed:
        return default_minutes

    if ":" in trimmed:
        parts = [int(part) for part in trimmed.split(":") if part.strip().isdigit()]
        if len(parts) == 3:
            return parts[0] * 60 + parts[1]
        if len(parts) == 2:
            return parts[0]

    hours_match = _HOURS_RE.search(trimmed)
    minutes_match = _MINUTES_RE.search(trimmed)
    if hours_match or minutes_match:
        hours = int(hours_match.group(1)) if hours_match else 0
        minutes = int(minutes_match.group(1)) if minutes_match else 0
        return hours * 60 + minutes

    try:
        return int(trimmed)
    except ValueError:
        return default_minutes


def parse_datetime(value: Any) -> datetime:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_optional_datetime(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return parse_datetime(value)


def parse_coordinate_pair(payload: Any) -> Optional[Tuple[float, float]]:
    """Read ``{"latitude": .., "longitude": ..}`` or ``[lat, lon]`` into a tuple."""
    if payload is None:
        return None
    if isinstance(payload, dict):
        lat = payload.get("latitude", payload.get("lat"))
        lon = payload.get("longitude", payload.get("lon", payload.get("lng")))
    elif isinstance(payload, (list, tuple)) and len(payload) == 2:
        lat, lon = payload
    else:
        return None
    if lat is None or lon is None:
        return None
    try:
        return float(lat), float(lon)
    except (TypeError, ValueError):
        return None


def load_data_file(file_path: Path) -> Any:
    """Load JSON or YAML content from disk based on suffix."""
    text = file_path.read_text()
    if not text.strip():
        return None
    if file_path.suffix.lower() in {".yaml", ".yml"}:
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {file_path}: {exc}") from exc
    return json.loads(text)


def load_object_list(file_path: Optional[Path], key: Optional[str] = None) -> List[Dict[str, Any]]:
    """Load a list of objects from a file, optionally nested under ``key``."""
    if file_path is None or not file_path.exists():
        return []

    raw_data = load_data_file(file_path)
    if isinstance(raw_data, dict) and key is not None:
        raw_data = raw_data.get(key, [])

    if isinstance(raw_data, dict):
        return [raw_data]
    if isinstance(raw_data, list):
        return [item for item in raw_data if isinstance(item, dict)]
    return []
