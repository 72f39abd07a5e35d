"""Suggest new location profiles from cached route starts."""

from __future__ import annotations

from typing import Optional

import typer
from rich.table import Table

from gymtag.commands.common import fail, get_state, open_store, print_json_payload
from gymtag.core.constants import CLUSTER_RADIUS_METERS, MIN_CLUSTER_VISITS
from gymtag.core.discovery import discover_locations
from gymtag.core.store import StoreError
from gymtag.utils.formatting import format_coordinate, format_date


def discover_command(
    ctx: typer.Context,
    min_visits: Optional[int] = typer.Option(None, help="Minimum visits for a suggestion"),
    radius: Optional[float] = typer.Option(None, help="Cluster radius in meters"),
) -> None:
    """List frequently visited places that no location profile covers yet."""
    state = get_state(ctx)
    discovery_cfg = state.config.get("discovery", {})
    radius_meters = radius if radius is not None else float(
        discovery_cfg.get("cluster_radius_meters", CLUSTER_RADIUS_METERS)
    )
    visits = min_visits if min_visits is not None else int(discovery_cfg.get("min_visits", MIN_CLUSTER_VISITS))

    try:
        store = open_store(state)
        points = store.route_points()
    except StoreError as exc:
        fail(str(exc))

    detected = discover_locations(
        points,
        store.profiles.profiles,
        radius_meters=radius_meters,
        min_visits=visits,
    )

    if state.json_output:
        print_json_payload(state, {"locations": [item.to_dict() for item in detected]})
        return

    if state.plain_output:
        typer.echo("name\tlatitude\tlongitude\tvisits\tlatest")
        for item in detected:
            typer.echo(
                f"{item.name}\t{item.coordinate.latitude:.6f}\t{item.coordinate.longitude:.6f}"
                f"\t{item.visit_count}\t{format_date(item.latest_session_date)}"
            )
        return

    if not detected:
        state.console.print("No new locations found.")
        return

    table = Table(title=f"Detected locations ({len(detected)})")
    table.add_column("Name")
    table.add_column("Coordinate")
    table.add_column("Visits")
    table.add_column("Latest")
    for item in detected:
        table.add_row(
            item.name,
            format_coordinate(item.coordinate),
            str(item.visit_count),
            format_date(item.latest_session_date),
        )
    state.console.print(table)
    state.console.print("Add one with: gymtag resolve SESSION_ID --name NAME --lat X --lon Y")
