"""Static constants and labels for gymtag."""

from __future__ import annotations

CATALOG_API_BASE = "http://localhost:8080/v1"
GEOCODER_URL = "https://nominatim.openstreetmap.org/search"
USER_AGENT = "gymtag/0.1"

EARTH_RADIUS_METERS = 6_371_008.8

MAX_DISTANCE_METERS = 250.0
STRICT_TOLERANCE_SECONDS = 20 * 60
RELAXED_TOLERANCE_SECONDS = 12 * 60 * 60
OVERLAP_WEIGHT = 0.25
DEFAULT_DURATION_MINUTES = 60

FALLBACK_DISPLAY_LIMIT = 25

CLUSTER_RADIUS_METERS = 120.0
MIN_CLUSTER_VISITS = 2
MANUAL_SELECTION_PROXIMITY_METERS = 120.0

DEFAULT_LOCATION_NAME = "Gym"

SKIP_REASON_LABELS = {
    "no_matching_record": "No matching workout in the health catalog",
    "no_route_location": "No route/start location in the health catalog",
    "no_nearby_location": "No location within {max_distance}m",
    "profiles_missing_location": "Locations missing addresses/coordinates",
}

ROUTE_PERMISSION_SUFFIX = " (route permission unavailable)"

SESSIONS_FILE = "sessions.json"
PROFILES_FILE = "profiles.json"
ANNOTATIONS_FILE = "annotations.json"
SYNC_CACHE_FILE = "sync_cache.json"
CATALOG_FILE = "catalog.json"
FALLBACK_FILE = "fallback.json"
