"""Configuration loading and typed matching settings."""

from __future__ import annotations

import copy
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # Python 3.9-3.10
    import tomli as tomllib  # type: ignore[no-redef]

from gymtag.core.constants import (
    CATALOG_API_BASE,
    CLUSTER_RADIUS_METERS,
    DEFAULT_DURATION_MINUTES,
    FALLBACK_DISPLAY_LIMIT,
    GEOCODER_URL,
    MAX_DISTANCE_METERS,
    MIN_CLUSTER_VISITS,
    OVERLAP_WEIGHT,
    USER_AGENT,
)


class ConfigError(RuntimeError):
    """Raised when config file parsing fails."""


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def expand_path(path_str: str) -> Path:
    """Expand user/env vars and return absolute path."""
    return Path(os.path.expandvars(path_str)).expanduser().resolve()


def default_data_dir() -> Path:
    """Resolve XDG-style data directory with env override."""
    raw = os.getenv("GYMTAG_DATA_DIR", "~/.local/share/gymtag")
    return expand_path(raw)


def default_config_path() -> Path:
    """Get default config file path."""
    raw = os.getenv("GYMTAG_CONFIG_FILE", "~/.config/gymtag/config.toml")
    return expand_path(raw)


def _default_config() -> Dict[str, Any]:
    data_dir = default_data_dir()
    return {
        "matching": {
            "max_distance_meters": MAX_DISTANCE_METERS,
            "strict_tolerance_minutes": 20,
            "relaxed_tolerance_hours": 12,
            "relaxed": False,
            "default_duration_minutes": DEFAULT_DURATION_MINUTES,
            "overlap_weight": OVERLAP_WEIGHT,
        },
        "fallback": {
            "display_limit": FALLBACK_DISPLAY_LIMIT,
        },
        "discovery": {
            "cluster_radius_meters": CLUSTER_RADIUS_METERS,
            "min_visits": MIN_CLUSTER_VISITS,
        },
        "catalog": {
            "source": "file",
            "base_url": CATALOG_API_BASE,
            "token_env": "GYMTAG_CATALOG_TOKEN",
            "records_file": "",
        },
        "geocoding": {
            "enabled": False,
            "url": GEOCODER_URL,
            "user_agent": USER_AGENT,
        },
        "store": {
            "directory": str(data_dir),
        },
        "export": {
            "default_directory": "./reports",
        },
        "api": {
            "rate_limit_delay": 0.0,
            "max_retries": 3,
            "timeout_seconds": 30,
        },
    }


DEFAULT_CONFIG: Dict[str, Any] = _default_config()


def _read_config(path: Path) -> Dict[str, Any]:
    suffix = path.suffix.lower()
    text = path.read_text()
    try:
        if suffix in {".toml", ""}:
            loaded = tomllib.loads(text)
        else:
            loaded = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in config file {path}: {exc}") from exc
    except Exception as exc:
        if suffix in {".toml", ""}:
            raise ConfigError(f"Invalid TOML in config file {path}: {exc}") from exc
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {path} must contain an object/table at the root")
    return loaded


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load configuration from disk, merged with defaults."""
    cfg_path = path or default_config_path()
    cfg = _default_config()
    if cfg_path.exists():
        cfg = _deep_merge(cfg, _read_config(cfg_path))
    return cfg


@dataclass(frozen=True)
class MatchingSettings:
    """Thresholds used by the matchers for one run."""

    max_distance_meters: float = MAX_DISTANCE_METERS
    strict_tolerance_seconds: float = 20 * 60
    relaxed_tolerance_seconds: float = 12 * 60 * 60
    relaxed: bool = False
    default_duration_minutes: int = DEFAULT_DURATION_MINUTES
    overlap_weight: float = OVERLAP_WEIGHT
    fallback_display_limit: int = FALLBACK_DISPLAY_LIMIT

    @property
    def query_padding_seconds(self) -> float:
        return max(self.strict_tolerance_seconds, self.relaxed_tolerance_seconds)


def matching_settings(config: Dict[str, Any], relaxed: Optional[bool] = None) -> MatchingSettings:
    """Build typed settings from the ``matching`` and ``fallback`` sections."""
    matching = config.get("matching", {})
    fallback = config.get("fallback", {})
    try:
        settings = MatchingSettings(
            max_distance_meters=float(matching.get("max_distance_meters", MAX_DISTANCE_METERS)),
            strict_tolerance_seconds=float(matching.get("strict_tolerance_minutes", 20)) * 60,
            relaxed_tolerance_seconds=float(matching.get("relaxed_tolerance_hours", 12)) * 3600,
            relaxed=bool(matching.get("relaxed", False)) if relaxed is None else relaxed,
            default_duration_minutes=int(
                matching.get("default_duration_minutes", DEFAULT_DURATION_MINUTES)
            ),
            overlap_weight=float(matching.get("overlap_weight", OVERLAP_WEIGHT)),
            fallback_display_limit=int(fallback.get("display_limit", FALLBACK_DISPLAY_LIMIT)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid matching settings: {exc}") from exc

    if settings.max_distance_meters < 0 or settings.strict_tolerance_seconds < 0:
        raise ConfigError("Matching thresholds must be non-negative")
    return settings


def resolve_store_dir(config: Dict[str, Any]) -> Path:
    """Resolve the data directory holding sessions, profiles and annotations."""
    raw = os.getenv("GYMTAG_STORE_DIR") or config.get("store", {}).get("directory")
    if not raw:
        raw = str(default_data_dir())
    return expand_path(raw)


def resolve_output_dir(config: Dict[str, Any], explicit: Optional[Path] = None) -> Path:
    """Resolve output directory with CLI override first."""
    if explicit is not None:
        return explicit.expanduser().resolve()
    raw = os.getenv("GYMTAG_OUTPUT_DIR") or config.get("export", {}).get(
        "default_directory",
        "./reports",
    )
    return expand_path(raw)
