"""Location tagging command."""

from __future__ import annotations

from contextlib import nullcontext
from pathlib import Path
from typing import List, Optional

import typer
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from gymtag.commands.common import (
    build_engine,
    fail,
    fallback_path,
    get_state,
    open_store,
    print_json_payload,
    run_async,
)
from gymtag.core.collaborators import AuthorizationError, CatalogError
from gymtag.core.config import ConfigError, matching_settings
from gymtag.core.engine import RunOutcome, select_targets
from gymtag.core.fallback import FallbackQueue
from gymtag.core.models import RunReport
from gymtag.core.store import StoreError
from gymtag.exporters.json_export import read_fallback, write_fallback
from gymtag.exporters.markdown import write_report
from gymtag.utils.date_ranges import resolve_date_range, validate_date
from gymtag.utils.formatting import describe_outcome, format_coordinate, format_date


def merge_fallback(previous: FallbackQueue, current: FallbackQueue, attempted: List[str]) -> FallbackQueue:
    """Keep earlier entries for sessions this run did not touch, then add this run's."""
    merged = FallbackQueue(current.ordered())
    touched = set(attempted)
    for candidate in previous.ordered():
        if candidate.session_id not in touched:
            merged.add(candidate)
    return merged


def _summary_lines(report: RunReport) -> List[str]:
    lines = [f"Tagged {report.assigned} of {report.attempted} sessions"]
    for reason, count in report.skipped_counts().items():
        if count:
            lines.append(f"  skipped ({reason.value}): {count}")
    if report.route_permission_unavailable:
        lines.append("  route permission unavailable; some sessions could not be located")
    return lines


def tag_command(
    ctx: typer.Context,
    start_date: Optional[str] = typer.Option(None, help="Start date (YYYY-MM-DD)", callback=validate_date),
    end_date: Optional[str] = typer.Option(None, help="End date (YYYY-MM-DD)", callback=validate_date),
    last_days: Optional[int] = typer.Option(None, help="Only sessions from the last N days"),
    session_ids: Optional[List[str]] = typer.Option(
        None,
        "--session",
        help="Only this session ID (repeatable)",
    ),
    relaxed: Optional[bool] = typer.Option(
        None,
        "--relaxed/--strict",
        help="Allow matches up to the relaxed tolerance (default from config)",
    ),
    report_file: Optional[Path] = typer.Option(
        None,
        help="Also write the report to this file (.md for markdown, JSON otherwise)",
    ),
) -> None:
    """Tag untagged sessions with the location they happened at."""
    state = get_state(ctx)
    start, end = resolve_date_range(start_date=start_date, end_date=end_date, last_days=last_days)

    try:
        store = open_store(state)
        sessions = store.sessions()
        targets = select_targets(
            sessions,
            store.annotations,
            store.profiles,
            selected_ids=session_ids or None,
            start=start,
            end=end,
        )
        display_limit = matching_settings(state.config).fallback_display_limit
    except (StoreError, ConfigError) as exc:
        fail(str(exc))

    show_progress = not (state.json_output or state.plain_output or state.quiet) and bool(targets)
    progress = (
        Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            console=state.console,
            transient=True,
        )
        if show_progress
        else None
    )

    def on_progress(value: float) -> None:
        if progress is not None:
            progress.update(task_id, completed=value)

    with progress if progress is not None else nullcontext():
        task_id = progress.add_task("Tagging sessions", total=1.0) if progress is not None else None
        try:
            engine = build_engine(state, store, relaxed=relaxed, on_progress=on_progress)
            outcome: RunOutcome = run_async(engine.run(targets))
        except AuthorizationError as exc:
            fail(f"Health catalog authorization failed: {exc}")
        except (CatalogError, ConfigError, StoreError) as exc:
            fail(str(exc))

    report = outcome.report
    queue_path = fallback_path(state)
    try:
        queue = merge_fallback(
            read_fallback(queue_path),
            outcome.fallback,
            [item.session_id for item in report.items],
        )
    except (KeyError, ValueError) as exc:
        fail(f"Invalid fallback file {queue_path}: {exc}")
    write_fallback(queue_path, queue)

    written: Optional[Path] = None
    if report_file is not None:
        written = write_report(report_file, report, queue, display_limit=display_limit)

    if state.json_output:
        payload = report.to_dict()
        payload["fallback"] = [candidate.to_dict() for candidate in queue.displayed(display_limit)]
        payload["fallback_total"] = len(queue)
        payload["exports"] = {
            "fallback_file": str(queue_path),
            "report_file": str(written) if written else None,
        }
        print_json_payload(state, payload)
        return

    if state.plain_output:
        typer.echo("date\tsession_id\tname\tstatus\tresult")
        for item in report.items:
            typer.echo(
                "\t".join(
                    [
                        format_date(item.session_date),
                        item.session_id,
                        item.session_name,
                        item.outcome.status,
                        describe_outcome(item),
                    ]
                )
            )
        typer.echo(f"attempted\t{report.attempted}")
        typer.echo(f"assigned\t{report.assigned}")
        typer.echo(f"fallback\t{len(queue)}")
        return

    if not report.items:
        state.console.print("No sessions need tagging.")
        return

    table = Table(title=f"Sessions ({report.attempted} attempted)")
    table.add_column("Date")
    table.add_column("Session")
    table.add_column("Status")
    table.add_column("Result")
    for item in report.items:
        table.add_row(
            format_date(item.session_date),
            item.session_name,
            item.outcome.status,
            describe_outcome(item),
        )
    state.console.print(table)

    for line in _summary_lines(report):
        state.console.print(line)

    if len(queue):
        review = Table(title=f"Needs manual review ({len(queue)})")
        review.add_column("Session ID")
        review.add_column("Date")
        review.add_column("Name")
        review.add_column("Approx. start")
        for candidate in queue.displayed(display_limit):
            review.add_row(
                candidate.session_id,
                format_date(candidate.session_date),
                candidate.session_name,
                format_coordinate(candidate.coordinate),
            )
        state.console.print(review)
        state.console.print("Resolve with: gymtag resolve SESSION_ID --location ID")

    if written is not None:
        state.console.print(f"Report written to: {written}")
