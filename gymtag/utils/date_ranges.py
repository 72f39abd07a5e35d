"""Date option parsing for selecting sessions to tag."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Optional, Tuple

import typer

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def validate_date(value: Optional[str]) -> Optional[str]:
    """Typer callback that validates YYYY-MM-DD format for date options."""
    if value is None:
        return value
    if not _DATE_RE.match(value):
        raise typer.BadParameter(f"Invalid date '{value}'. Expected format: YYYY-MM-DD")
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise typer.BadParameter(f"Invalid date '{value}'. Expected format: YYYY-MM-DD")
    return value


def parse_date(value: str) -> date:
    return datetime.strptime(value, "%Y-%m-%d").date()


def resolve_date_range(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    last_days: Optional[int] = None,
    today: Optional[date] = None,
) -> Tuple[Optional[date], Optional[date]]:
    """Resolve date flags into inclusive bounds; ``None`` means unbounded.

    Unlike a fetch, tagging defaults to every logged session, so no flags
    yields ``(None, None)``.
    """
    now = today or date.today()

    if start_date or end_date:
        start = parse_date(start_date) if start_date else None
        end = parse_date(end_date) if end_date else None
        if start and end and start > end:
            raise typer.BadParameter("--start-date must not be after --end-date")
        return start, end

    if last_days:
        return now - timedelta(days=max(last_days - 1, 0)), now

    return None, None
