"""Health catalog and geocoding HTTP clients with retry and rate limiting."""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Tuple

import requests

from gymtag.core.collaborators import AuthorizationError, CatalogError
from gymtag.core.constants import CATALOG_API_BASE, GEOCODER_URL, USER_AGENT

_RETRY_STATUSES = (429, 500, 502, 503, 504)


class APIError(CatalogError):
    """Raised for API failures after retries."""


class PermissionDeniedError(AuthorizationError):
    """Raised when the API answers 401/403."""

    def __init__(self, message: str, path: str) -> None:
        super().__init__(message)
        self.path = path


class HealthCatalogAPI:
    """Thin wrapper around the health platform's workout REST API."""

    def __init__(
        self,
        token: str,
        base_url: str = CATALOG_API_BASE,
        rate_limit_delay: float = 0.0,
        max_retries: int = 3,
        timeout_seconds: int = 30,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.rate_limit_delay = rate_limit_delay
        self.max_retries = max_retries
        self.timeout_seconds = timeout_seconds
        self._has_sent_request = False

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Any:
        url = f"{self.base_url}{path}"
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            try:
                if self.rate_limit_delay > 0 and self._has_sent_request:
                    time.sleep(self.rate_limit_delay)

                self._has_sent_request = True
                response = requests.request(
                    method=method,
                    url=url,
                    headers=self._headers,
                    params=params,
                    timeout=self.timeout_seconds,
                )
                if response.status_code in (401, 403):
                    raise PermissionDeniedError(
                        f"Access denied for {method} {path} ({response.status_code})",
                        path=path,
                    )
                if response.status_code == 404 and allow_missing:
                    return None
                if response.status_code in _RETRY_STATUSES:
                    raise requests.HTTPError(response.text, response=response)
                response.raise_for_status()

                if not response.text:
                    return {}
                return response.json()
            except (requests.RequestException, ValueError) as exc:
                last_error = exc
                if attempt >= self.max_retries:
                    break
                time.sleep(min(2**attempt, 8))

        raise APIError(f"API request failed for {method} {path}: {last_error}")

    def get(self, path: str, params: Optional[Dict[str, Any]] = None, allow_missing: bool = False) -> Any:
        return self._request("GET", path, params=params, allow_missing=allow_missing)

    def post(self, path: str) -> Any:
        return self._request("POST", path)

    def authorize_workouts(self) -> Any:
        return self.post("/authorization/workouts")

    def authorize_routes(self) -> Any:
        return self.post("/authorization/routes")

    def get_workouts(self, start: str, end: str) -> List[Dict[str, Any]]:
        payload = self.get("/workouts", params={"start": start, "end": end})
        if isinstance(payload, dict):
            payload = payload.get("workouts", [])
        return [item for item in payload or [] if isinstance(item, dict)]

    def get_route_start(self, workout_id: str) -> Optional[Dict[str, Any]]:
        payload = self.get(f"/workouts/{workout_id}/route/start", allow_missing=True)
        return payload or None


class GeocodingClient:
    """Address lookup against a Nominatim-compatible search endpoint."""

    def __init__(
        self,
        url: str = GEOCODER_URL,
        user_agent: str = USER_AGENT,
        timeout_seconds: int = 30,
    ) -> None:
        self.url = url
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds

    def geocode(self, address: str) -> Optional[Tuple[float, float]]:
        """Best-effort lookup; returns None when nothing is found or the request fails."""
        try:
            response = requests.get(
                self.url,
                params={"q": address, "format": "json", "limit": 1},
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            results = response.json()
        except (requests.RequestException, ValueError):
            return None

        if not isinstance(results, list) or not results:
            return None
        first = results[0]
        try:
            return float(first["lat"]), float(first["lon"])
        except (KeyError, TypeError, ValueError):
            return None
