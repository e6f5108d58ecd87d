"""
app/connectors package marker.
"""

from app.connectors.base import RETRYABLE_STATUS_CODES, BaseGeocodingProvider, MinIntervalRateLimiter
from app.connectors.geocoding_providers import (
    FallbackGeocodingProvider,
    GoogleGeocodingProvider,
    MapboxGeocodingProvider,
    NominatimGeocodingProvider,
    build_geocoding_provider,
)

__all__ = [
    "RETRYABLE_STATUS_CODES",
    "BaseGeocodingProvider",
    "FallbackGeocodingProvider",
    "GoogleGeocodingProvider",
    "MapboxGeocodingProvider",
    "MinIntervalRateLimiter",
    "NominatimGeocodingProvider",
    "build_geocoding_provider",
]
