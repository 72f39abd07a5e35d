from __future__ import annotations

from datetime import date

import pytest
import typer

from gymtag.utils.date_ranges import parse_date, resolve_date_range, validate_date


def test_validate_date_accepts_iso_and_none() -> None:
    assert validate_date("2026-03-02") == "2026-03-02"
    assert validate_date(None) is None


@pytest.mark.parametrize("value", ["2026/03/02", "2026-13-01", "yesterday"])
def test_validate_date_rejects_invalid(value: str) -> None:
    with pytest.raises(typer.BadParameter):
        validate_date(value)


def test_parse_date() -> None:
    assert parse_date("2026-03-02") == date(2026, 3, 2)


def test_resolve_date_range_defaults_to_unbounded() -> None:
    assert resolve_date_range() == (None, None)


def test_resolve_date_range_explicit_and_open_ended() -> None:
    assert resolve_date_range("2026-03-01", "2026-03-05") == (date(2026, 3, 1), date(2026, 3, 5))
    assert resolve_date_range(start_date="2026-03-01") == (date(2026, 3, 1), None)
    assert resolve_date_range(end_date="2026-03-05") == (None, date(2026, 3, 5))


def test_resolve_date_range_last_days() -> None:
    today = date(2026, 3, 10)
    assert resolve_date_range(last_days=7, today=today) == (date(2026, 3, 4), today)


def test_resolve_date_range_rejects_inverted_range() -> None:
    with pytest.raises(typer.BadParameter):
        resolve_date_range("2026-03-05", "2026-03-01")
