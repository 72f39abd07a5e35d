"""Shared command helpers."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, NoReturn, Optional, TypeVar

import typer

from gymtag.core.api import GeocodingClient
from gymtag.core.catalog import build_catalog
from gymtag.core.config import matching_settings
from gymtag.core.constants import FALLBACK_FILE, GEOCODER_URL, USER_AGENT
from gymtag.core.context import ProgressCallback
from gymtag.core.engine import ReconciliationEngine
from gymtag.core.state import CLIState
from gymtag.core.store import LocalStore

T = TypeVar("T")


def get_state(ctx: typer.Context) -> CLIState:
    """Extract validated CLI state from Typer context."""
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=2)
    return state


def print_json_payload(state: CLIState, payload: Any) -> None:
    """Print JSON payload with plain-mode fallback for piping."""
    if state.plain_output:
        typer.echo(json.dumps(payload, separators=(",", ":")))
        return
    state.console.print_json(data=payload)


def fail(message: str, code: int = 1) -> NoReturn:
    """Print an error and exit; used for run-fatal errors."""
    typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=code)


def run_async(awaitable: Awaitable[T]) -> T:
    return asyncio.run(awaitable)  # type: ignore[arg-type]


def build_geocoder(state: CLIState) -> Optional[GeocodingClient]:
    geo_cfg = state.config.get("geocoding", {})
    if not geo_cfg.get("enabled"):
        return None
    return GeocodingClient(
        url=str(geo_cfg.get("url") or GEOCODER_URL),
        user_agent=str(geo_cfg.get("user_agent") or USER_AGENT),
        timeout_seconds=int(state.config.get("api", {}).get("timeout_seconds", 30)),
    )


def open_store(state: CLIState) -> LocalStore:
    """File-backed collaborators rooted at the configured data directory."""
    return LocalStore(state.data_dir, geocoder=build_geocoder(state))


def fallback_path(state: CLIState) -> Path:
    return state.data_dir / FALLBACK_FILE


def build_engine(
    state: CLIState,
    store: LocalStore,
    relaxed: Optional[bool] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> ReconciliationEngine:
    return ReconciliationEngine(
        catalog=build_catalog(state.config),
        directory=store.profiles,
        assignments=store.annotations,
        cache=store.cache,
        settings=matching_settings(state.config, relaxed=relaxed),
        on_progress=on_progress,
    )
