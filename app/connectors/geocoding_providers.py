"""
app/connectors/geocoding_providers.py

Mapbox, Google and Nominatim geocoding clients plus the fallback chain.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence
from urllib.parse import quote

import requests

from app.config import GeocodingSettings
from app.connectors.base import BaseGeocodingProvider, MinIntervalRateLimiter
from app.domain.store_import import GeocodeRequest, GeocodeResult
from app.errors import GeocodingProviderError

logger = logging.getLogger(__name__)

MAPBOX_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{query}.json"
GOOGLE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"

# Nominatim's usage policy allows at most one request per second.
NOMINATIM_RATE_LIMIT_PER_SECOND = 1.0

_GOOGLE_RETRYABLE_STATUSES = {"OVER_QUERY_LIMIT", "UNKNOWN_ERROR"}


class MapboxGeocodingProvider(BaseGeocodingProvider):
    def __init__(
        self,
        *,
        access_token: str,
        timeout_seconds: float,
        rate_limit_per_second: float,
        session: requests.Session | None = None,
        rate_limiter: MinIntervalRateLimiter | None = None,
    ) -> None:
        super().__init__(
            name="mapbox",
            timeout_seconds=timeout_seconds,
            rate_limit_per_second=rate_limit_per_second,
            session=session,
            rate_limiter=rate_limiter,
        )
        self._access_token = access_token

    def _fetch(self, request: GeocodeRequest) -> Any:
        return self._request_json(
            url=MAPBOX_URL.format(query=quote(request.query(), safe="")),
            params={"access_token": self._access_token, "limit": 1},
        )

    def _extract_coordinates(self, payload: Any) -> tuple[Any, Any]:
        features = payload.get("features") if isinstance(payload, dict) else None
        if not features:
            raise self._no_results()

        center = features[0]["center"] or []
        if len(center) != 2:
            raise self._no_results()
        longitude, latitude = center
        return latitude, longitude


class GoogleGeocodingProvider(BaseGeocodingProvider):
    def __init__(
        self,
        *,
        api_key: str,
        timeout_seconds: float,
        rate_limit_per_second: float,
        session: requests.Session | None = None,
        rate_limiter: MinIntervalRateLimiter | None = None,
    ) -> None:
        super().__init__(
            name="google",
            timeout_seconds=timeout_seconds,
            rate_limit_per_second=rate_limit_per_second,
            session=session,
            rate_limiter=rate_limiter,
        )
        self._api_key = api_key

    def _fetch(self, request: GeocodeRequest) -> Any:
        return self._request_json(
            url=GOOGLE_URL,
            params={"address": request.query(), "key": self._api_key},
        )

    def _extract_coordinates(self, payload: Any) -> tuple[Any, Any]:
        if not isinstance(payload, dict):
            raise self._no_results()

        status = str(payload.get("status") or "")
        if status in _GOOGLE_RETRYABLE_STATUSES:
            raise GeocodingProviderError(
                f"google: status {status}",
                provider=self.name,
                retryable=True,
            )
        if status == "ZERO_RESULTS" or not payload.get("results"):
            raise self._no_results()
        if status != "OK":
            raise GeocodingProviderError(
                f"google: status {status or 'missing'}",
                provider=self.name,
                retryable=False,
            )

        location = payload["results"][0]["geometry"]["location"]
        return location["lat"], location["lng"]


class NominatimGeocodingProvider(BaseGeocodingProvider):
    def __init__(
        self,
        *,
        user_agent: str,
        timeout_seconds: float,
        session: requests.Session | None = None,
        rate_limiter: MinIntervalRateLimiter | None = None,
    ) -> None:
        super().__init__(
            name="nominatim",
            timeout_seconds=timeout_seconds,
            rate_limit_per_second=NOMINATIM_RATE_LIMIT_PER_SECOND,
            session=session,
            rate_limiter=rate_limiter,
        )
        self._user_agent = user_agent

    def _fetch(self, request: GeocodeRequest) -> Any:
        return self._request_json(
            url=NOMINATIM_URL,
            params={"q": request.query(), "format": "json", "limit": 1},
            headers={"User-Agent": self._user_agent},
        )

    def _extract_coordinates(self, payload: Any) -> tuple[Any, Any]:
        if not isinstance(payload, list) or not payload:
            raise self._no_results()

        first = payload[0]
        return first["lat"], first["lon"]


class FallbackGeocodingProvider:
    """
    Tries each provider in order until one resolves the address.

    When every provider fails the raised error is retryable if any of the
    individual failures was.
    """

    name = "fallback"

    def __init__(self, providers: Sequence[BaseGeocodingProvider]) -> None:
        if not providers:
            raise ValueError("FallbackGeocodingProvider needs at least one provider.")
        self._providers = tuple(providers)

    @property
    def providers(self) -> tuple[BaseGeocodingProvider, ...]:
        return self._providers

    def geocode(self, request: GeocodeRequest) -> GeocodeResult:
        failures: list[GeocodingProviderError] = []
        for provider in self._providers:
            try:
                return provider.geocode(request)
            except GeocodingProviderError as exc:
                logger.debug("Geocoding provider failed provider=%s error=%s", provider.name, exc.message)
                failures.append(exc)

        raise GeocodingProviderError(
            "; ".join(failure.message for failure in failures),
            provider=self.name,
            retryable=any(failure.retryable for failure in failures),
        )


def build_geocoding_provider(
    settings: GeocodingSettings,
    *,
    session: requests.Session | None = None,
) -> FallbackGeocodingProvider | None:
    """
    Assemble the configured providers; None when nothing is configured.
    """

    http_session = session or requests.Session()
    providers: list[BaseGeocodingProvider] = []
    if settings.mapbox_token:
        providers.append(
            MapboxGeocodingProvider(
                access_token=settings.mapbox_token,
                timeout_seconds=settings.timeout_seconds,
                rate_limit_per_second=settings.rate_limit_per_second,
                session=http_session,
            )
        )
    if settings.google_api_key:
        providers.append(
            GoogleGeocodingProvider(
                api_key=settings.google_api_key,
                timeout_seconds=settings.timeout_seconds,
                rate_limit_per_second=settings.rate_limit_per_second,
                session=http_session,
            )
        )
    if settings.nominatim_enabled:
        providers.append(
            NominatimGeocodingProvider(
                user_agent=settings.nominatim_user_agent,
                timeout_seconds=settings.timeout_seconds,
                session=http_session,
            )
        )

    if not providers:
        logger.warning("No geocoding provider configured; rows without coordinates stay pending")
        return None
    logger.info("Geocoding providers configured chain=%s", ",".join(item.name for item in providers))
    return FallbackGeocodingProvider(providers)
