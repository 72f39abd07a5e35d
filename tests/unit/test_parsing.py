from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from gymtag.utils.parsing import (
    estimated_duration_minutes,
    load_data_file,
    load_object_list,
    parse_coordinate_pair,
    parse_datetime,
)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("", 60),
        (None, 60),
        ("01:15:00", 75),
        ("45:30", 45),
        ("1h 15m", 75),
        ("2h", 120),
        ("40m", 40),
        ("45", 45),
        ("about an hour", 60),
    ],
)
def test_estimated_duration_minutes(value, expected) -> None:
    assert estimated_duration_minutes(value) == expected


def test_estimated_duration_uses_custom_default() -> None:
    assert estimated_duration_minutes("", default_minutes=30) == 30


def test_parse_datetime_handles_zulu_and_naive() -> None:
    expected = datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc)
    assert parse_datetime("2026-03-02T18:00:00Z") == expected
    assert parse_datetime("2026-03-02T18:00:00") == expected
    with pytest.raises(ValueError):
        parse_datetime("")


def test_parse_coordinate_pair_variants() -> None:
    assert parse_coordinate_pair({"latitude": 1, "longitude": 2}) == (1.0, 2.0)
    assert parse_coordinate_pair({"lat": 1, "lng": 2}) == (1.0, 2.0)
    assert parse_coordinate_pair([1, 2]) == (1.0, 2.0)
    assert parse_coordinate_pair({"lat": 1}) is None
    assert parse_coordinate_pair({"latitude": {"deg": 52.5}, "longitude": {"deg": 13.4}}) is None
    assert parse_coordinate_pair(["north", "east"]) is None
    assert parse_coordinate_pair(None) is None


def test_load_data_file_yaml_and_json(tmp_path: Path) -> None:
    yaml_path = tmp_path / "sessions.yaml"
    yaml_path.write_text("sessions:\n  - id: s1\n    name: Legs\n")
    json_path = tmp_path / "sessions.json"
    json_path.write_text('[{"id": "s2"}]')

    assert load_object_list(yaml_path, key="sessions") == [{"id": "s1", "name": "Legs"}]
    assert load_object_list(json_path, key="sessions") == [{"id": "s2"}]
    assert load_object_list(tmp_path / "missing.json") == []


def test_load_data_file_invalid_yaml_raises_value_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("sessions: [unclosed\n")
    with pytest.raises(ValueError, match="Invalid YAML"):
        load_data_file(path)
