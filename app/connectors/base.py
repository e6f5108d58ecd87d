"""
app/connectors/base.py

Base geocoding provider abstraction and shared HTTP mechanics.

Providers make exactly one attempt per call. Retries and backoff are owned by
the GeocodingBatcher so they can be tested without real delays.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable

import requests

from app.domain.store_import import GeocodeRequest, GeocodeResult
from app.errors import GeocodingProviderError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class MinIntervalRateLimiter:
    """
    Enforces a minimum interval between calls, shared across worker threads.
    """

    def __init__(
        self,
        *,
        rate_limit_per_second: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._min_interval_seconds = 1.0 / rate_limit_per_second if rate_limit_per_second > 0 else 0.0
        self._sleep = sleep
        self._clock = clock
        self._last_request: float | None = None
        self._lock = threading.Lock()

    def wait(self) -> None:
        if self._min_interval_seconds <= 0:
            return

        with self._lock:
            if self._last_request is not None:
                remaining = self._min_interval_seconds - (self._clock() - self._last_request)
                if remaining > 0:
                    self._sleep(remaining)
            self._last_request = self._clock()


class BaseGeocodingProvider(ABC):
    """
    One address-geocoding backend.

    `geocode` returns a success result or raises GeocodingProviderError.
    """

    name: str

    def __init__(
        self,
        *,
        name: str,
        timeout_seconds: float,
        rate_limit_per_second: float,
        session: requests.Session | None = None,
        rate_limiter: MinIntervalRateLimiter | None = None,
    ) -> None:
        self.name = name
        self._session = session or requests.Session()
        self._timeout_seconds = timeout_seconds
        self._rate_limiter = rate_limiter or MinIntervalRateLimiter(
            rate_limit_per_second=rate_limit_per_second,
        )

    def geocode(self, request: GeocodeRequest) -> GeocodeResult:
        """
        Resolve one address to coordinates.

        A payload whose shape does not match the provider's documented format
        is reported as a non-retryable failure for this address only.
        """

        payload = self._fetch(request)
        try:
            latitude, longitude = self._extract_coordinates(payload)
        except (AttributeError, IndexError, KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "Geocoding payload malformed provider=%s error=%s",
                self.name,
                exc.__class__.__name__,
            )
            raise GeocodingProviderError(
                f"{self.name}: malformed response ({exc.__class__.__name__})",
                provider=self.name,
                retryable=False,
            ) from exc
        return self._coordinates(latitude, longitude)

    @abstractmethod
    def _fetch(self, request: GeocodeRequest) -> Any:
        """Issue the provider request and return the decoded JSON body."""

    @abstractmethod
    def _extract_coordinates(self, payload: Any) -> tuple[Any, Any]:
        """
        Return (latitude, longitude) from a decoded body.

        Raises GeocodingProviderError for empty or error responses.
        """

    def _request_json(
        self,
        *,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Execute one rate-limited GET and return parsed JSON.

        Timeouts, connection errors, 429 and 5xx responses are retryable;
        other HTTP errors and malformed bodies are not.
        """

        self._rate_limiter.wait()
        try:
            response = self._session.get(
                url,
                params=params,
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except (requests.Timeout, requests.ConnectionError) as exc:
            logger.warning("Geocoding transport failure provider=%s error=%s", self.name, exc)
            raise GeocodingProviderError(
                f"{self.name}: request failed ({exc.__class__.__name__})",
                provider=self.name,
                retryable=True,
            ) from exc
        except requests.RequestException as exc:
            raise GeocodingProviderError(
                f"{self.name}: request failed ({exc})",
                provider=self.name,
                retryable=False,
            ) from exc

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise GeocodingProviderError(
                f"{self.name}: HTTP {response.status_code}",
                provider=self.name,
                retryable=True,
            )
        if response.status_code >= 400:
            logger.error(
                "Geocoding request rejected provider=%s status=%s",
                self.name,
                response.status_code,
            )
            raise GeocodingProviderError(
                f"{self.name}: HTTP {response.status_code}",
                provider=self.name,
                retryable=False,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise GeocodingProviderError(
                f"{self.name}: response was not valid JSON",
                provider=self.name,
                retryable=False,
            ) from exc

    def _no_results(self) -> GeocodingProviderError:
        return GeocodingProviderError(
            f"{self.name}: no results for address",
            provider=self.name,
            retryable=False,
        )

    def _coordinates(self, latitude: Any, longitude: Any) -> GeocodeResult:
        try:
            return GeocodeResult.success(
                latitude=float(latitude),
                longitude=float(longitude),
                provider=self.name,
            )
        except (TypeError, ValueError) as exc:
            raise GeocodingProviderError(
                f"{self.name}: response carried non-numeric coordinates",
                provider=self.name,
                retryable=False,
            ) from exc
