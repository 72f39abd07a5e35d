"""Manual resolution of sessions left in the fallback queue."""

from __future__ import annotations

from typing import Optional

import typer

from gymtag.commands.common import fail, fallback_path, get_state, open_store, print_json_payload, run_async
from gymtag.core.fallback import resolve_fallback, resolve_fallback_selection
from gymtag.core.models import Coordinate
from gymtag.core.store import StoreError
from gymtag.exporters.json_export import read_fallback, write_fallback


def resolve_command(
    ctx: typer.Context,
    session_id: str = typer.Argument(..., help="Session ID from the fallback queue"),
    location_id: Optional[str] = typer.Option(None, "--location", help="Existing location profile ID"),
    name: Optional[str] = typer.Option(None, help="Name of the chosen place"),
    lat: Optional[float] = typer.Option(None, help="Latitude of the chosen place"),
    lon: Optional[float] = typer.Option(None, help="Longitude of the chosen place"),
    address: Optional[str] = typer.Option(None, help="Address of the chosen place"),
) -> None:
    """Tag a queued session with an existing location or a place picked on the map."""
    state = get_state(ctx)

    if location_id and (lat is not None or lon is not None):
        raise typer.BadParameter("--location cannot be combined with --lat/--lon")
    if not location_id and (lat is None or lon is None):
        raise typer.BadParameter("Provide --location, or --lat and --lon (with --name/--address)")

    queue_path = fallback_path(state)
    try:
        store = open_store(state)
        queue = read_fallback(queue_path)
    except StoreError as exc:
        fail(str(exc))
    except (KeyError, ValueError) as exc:
        fail(f"Invalid fallback file {queue_path}: {exc}")

    if session_id not in queue:
        fail(f"Session {session_id} is not in the fallback queue")

    if location_id:
        if store.profiles.profile_name(location_id) is None:
            fail(f"Unknown location: {location_id}")
        run_async(resolve_fallback(queue, session_id, location_id, store.annotations, store.profiles))
    else:
        location_id = run_async(
            resolve_fallback_selection(
                queue,
                session_id,
                name or "",
                address,
                Coordinate(latitude=float(lat), longitude=float(lon)),  # type: ignore[arg-type]
                store.annotations,
                store.profiles,
            )
        )

    write_fallback(queue_path, queue)
    location_name = store.profiles.profile_name(location_id)

    payload = {
        "session_id": session_id,
        "location_id": location_id,
        "location_name": location_name,
        "remaining": len(queue),
    }
    if state.json_output:
        print_json_payload(state, payload)
        return
    if state.plain_output:
        typer.echo("\t".join([session_id, location_id, location_name or ""]))
        return
    state.console.print(f"Tagged {session_id} with {location_name} ({location_id})")
    state.console.print(f"{len(queue)} sessions left to review")
