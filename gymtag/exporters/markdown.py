"""Markdown rendering of run reports."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from gymtag.core.fallback import FallbackQueue
from gymtag.core.models import RunReport
from gymtag.exporters.json_export import write_json
from gymtag.utils.formatting import describe_outcome, format_coordinate, format_date


def _escape(text: str) -> str:
    return text.replace("|", "\\|")


def report_to_markdown(
    report: RunReport,
    fallback: Optional[FallbackQueue] = None,
    display_limit: Optional[int] = None,
) -> str:
    """Convert a run report (and optionally the fallback queue) to markdown."""
    lines: List[str] = [
        "# Location tagging report",
        "",
        f"- **Attempted:** {report.attempted}",
        f"- **Assigned:** {report.assigned}",
    ]
    for reason, count in report.skipped_counts().items():
        lines.append(f"- **Skipped ({reason.value.replace('_', ' ')}):** {count}")
    if report.route_permission_unavailable:
        lines.append("- **Note:** route permission was unavailable during this run")

    lines.extend(["", "## Sessions", ""])
    if report.items:
        lines.append("| Date | Session | Status | Result |")
        lines.append("|---|---|---|---|")
        for item in report.items:
            lines.append(
                f"| {format_date(item.session_date)} | {_escape(item.session_name)} "
                f"| {item.outcome.status} | {_escape(describe_outcome(item))} |"
            )
    else:
        lines.append("No sessions needed tagging.")

    if fallback is not None and len(fallback):
        shown = fallback.displayed(display_limit)
        lines.extend(["", f"## Needs manual review ({len(fallback)})", ""])
        for candidate in shown:
            lines.append(
                f"- {format_date(candidate.session_date)} {candidate.session_name} "
                f"(`{candidate.session_id}`) near {format_coordinate(candidate.coordinate)}"
            )
        if len(shown) < len(fallback):
            lines.append(f"- ... and {len(fallback) - len(shown)} more")

    return "\n".join(lines) + "\n"


def write_report(
    path: Path,
    report: RunReport,
    fallback: Optional[FallbackQueue] = None,
    display_limit: Optional[int] = None,
) -> Path:
    """Write the report as markdown for ``.md`` paths and JSON otherwise."""
    if path.suffix.lower() in {".md", ".markdown"}:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(report_to_markdown(report, fallback, display_limit))
        return path

    payload = report.to_dict()
    if fallback is not None:
        payload["fallback"] = fallback.to_list()
    return write_json(path, payload)
