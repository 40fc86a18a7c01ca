"""
OSRM route client: the driving-distance oracle for "maybe" points.

Only consulted when the crow-flies filter cannot decide.

- one GET per (origin, charger) pair against `/route/v1/{profile}/...`;
- transport failures (connection errors, timeouts) and throttling / gateway
  statuses (429, 502, 503, 504) are retried through a bounded `RetryPolicy`;
- an exchange that completes but carries no usable route (malformed JSON,
  `code != "Ok"`, empty `routes`, other HTTP errors) means "no route" and is
  returned as `None` right away, never retried;
- when the retry policy gives up we raise `OracleUnavailableError` so the
  caller can treat that single candidate as undetermined.

Sessions are created per thread unless one is injected, which lets a single
client instance be shared by every chunk worker.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import requests
from pydantic import BaseModel, ValidationError

from chargegaps.log import LOGGER_NAME
from chargegaps.routing.retry import RetryExhaustedError, RetryPolicy, retry_policy_from_settings

DEFAULT_OSRM_URL = "https://router.project-osrm.org"

_TRANSIENT_STATUS = {429, 502, 503, 504}


class OracleUnavailableError(RuntimeError):
    # Raised when the router stayed unreachable for the whole retry budget.
    pass


class _TransientStatusError(RuntimeError):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"transient HTTP status {status_code}")
        self.status_code = status_code


class OSRMRoute(BaseModel):
    distance: float


class OSRMRouteResponse(BaseModel):
    code: str = "Ok"
    routes: list[OSRMRoute]


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, (requests.ConnectionError, requests.Timeout, _TransientStatusError))


def parse_route_distance(payload: Any) -> float | None:
    """Distance in meters of the first route, or None when the payload has no usable route."""
    try:
        parsed = OSRMRouteResponse.model_validate(payload)
    except ValidationError:
        return None
    if parsed.code != "Ok" or not parsed.routes:
        return None
    return float(parsed.routes[0].distance)


@dataclass
class OSRMClient:
    base_url: str = DEFAULT_OSRM_URL
    profile: str = "driving"
    # Per-request deadline; a hung socket counts as a transport failure.
    request_timeout_s: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    # Tests inject a fake sleep so backoff does not slow them down.
    sleep_fn: Callable[[float], None] | None = None
    logger: logging.Logger | None = None
    # Injected session is shared by all threads (tests); otherwise one per thread.
    session: requests.Session | None = None
    _local: threading.local = field(default_factory=threading.local, repr=False)
    _owned: list[requests.Session] = field(default_factory=list, repr=False)
    _owned_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        self.base_url = str(self.base_url).rstrip("/")

    @classmethod
    def from_settings(cls, settings: dict[str, Any]) -> "OSRMClient":
        osrm = settings.get("osrm", {}) or {}
        return cls(
            base_url=str(osrm.get("base_url") or DEFAULT_OSRM_URL),
            profile=str(osrm.get("profile", "driving")),
            request_timeout_s=float(osrm.get("request_timeout_s", 30.0)),
            retry=retry_policy_from_settings(settings),
            logger=logging.getLogger(LOGGER_NAME),
        )

    def _log(self) -> logging.Logger:
        return self.logger or logging.getLogger(LOGGER_NAME)

    def _http(self) -> requests.Session:
        if self.session is not None:
            return self.session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._owned_lock:
                self._owned.append(session)
        return session

    def close(self) -> None:
        """Close every session this client used, including an injected one."""
        with self._owned_lock:
            owned, self._owned = self._owned, []
        for session in owned:
            session.close()
        if self.session is not None:
            self.session.close()
        self._local = threading.local()

    def route_url(self, origin_lat: float, origin_lon: float, dest_lat: float, dest_lon: float) -> str:
        # OSRM takes lon,lat pairs.
        coords = f"{origin_lon},{origin_lat};{dest_lon},{dest_lat}"
        return f"{self.base_url}/route/v1/{self.profile}/{coords}"

    def driving_distance_m(
        self,
        origin_lat: float,
        origin_lon: float,
        dest_lat: float,
        dest_lon: float,
    ) -> float | None:
        url = self.route_url(origin_lat, origin_lon, dest_lat, dest_lon)

        def do_get() -> requests.Response:
            resp = self._http().get(url, params={"overview": "false"}, timeout=self.request_timeout_s)
            if resp.status_code in _TRANSIENT_STATUS:
                raise _TransientStatusError(resp.status_code)
            return resp

        def on_retry(attempt: int, wait_s: float, exc: BaseException) -> None:
            self._log().warning(
                "OSRM request failed (%s), retrying in %.0fs (attempt %s)",
                exc,
                wait_s,
                attempt,
            )

        try:
            resp = self.retry.run(
                do_get,
                is_transient=_is_transient,
                sleep_fn=self.sleep_fn or time.sleep,
                on_retry=on_retry,
            )
        except RetryExhaustedError as e:
            raise OracleUnavailableError(f"OSRM unavailable for {url}: {e}") from e

        if resp.status_code >= 400:
            # OSRM answers NoRoute / NoSegment with a 400 and a JSON body.
            self._log().debug("OSRM returned status %s for %s", resp.status_code, url)
            return None
        try:
            payload = resp.json()
        except ValueError:
            self._log().debug("OSRM returned a non-JSON body for %s", url)
            return None
        return parse_route_distance(payload)
