"""
app/services/geocoding_batcher.py

Batched, rate-limited geocoding with per-request retry.

Requests are split into sub-batches of `batch_size`; each sub-batch is
dispatched over at most `max_concurrency` worker threads, and a fixed delay
separates consecutive sub-batches. A failing request only ever produces a
failed result for its own index.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, Protocol, Sequence

from app.config import GeocodingSettings
from app.domain.store_import import (
    GeocodeRequest,
    GeocodeResult,
    NormalizedStoreRecord,
    valid_coordinates,
)
from app.errors import GeocodingProviderError

logger = logging.getLogger(__name__)

BackoffPolicy = Callable[[int], float]


class GeocodingProvider(Protocol):
    name: str

    def geocode(self, request: GeocodeRequest) -> GeocodeResult:
        ...


def exponential_backoff(
    *,
    initial_seconds: float,
    multiplier: float = 2.0,
    max_seconds: float | None = None,
) -> BackoffPolicy:
    """
    Build a pure retry policy: retry number n (1-based) waits
    initial_seconds * multiplier ** (n - 1), capped at max_seconds.
    """

    def policy(retry_number: int) -> float:
        delay = initial_seconds * (multiplier ** max(0, retry_number - 1))
        if max_seconds is not None:
            delay = min(delay, max_seconds)
        return max(0.0, delay)

    return policy


def build_geocode_request(record: NormalizedStoreRecord) -> GeocodeRequest:
    return GeocodeRequest(
        address=record.address,
        city=record.city,
        postcode=record.postcode,
        country=record.country,
    )


class GeocodingBatcher:
    def __init__(
        self,
        *,
        provider: GeocodingProvider | None,
        batch_size: int = 10,
        delay_seconds: float = 0.1,
        max_concurrency: int = 3,
        max_retries: int = 2,
        backoff_policy: BackoffPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._provider = provider
        self._batch_size = max(1, batch_size)
        self._delay_seconds = max(0.0, delay_seconds)
        self._max_concurrency = max(1, max_concurrency)
        self._max_retries = max(0, max_retries)
        self._backoff_policy = backoff_policy or exponential_backoff(initial_seconds=0.5)
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: GeocodingSettings,
        *,
        provider: GeocodingProvider | None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> GeocodingBatcher:
        return cls(
            provider=provider,
            batch_size=settings.batch_size,
            delay_seconds=settings.delay_ms / 1000.0,
            max_concurrency=settings.max_concurrency,
            max_retries=settings.max_retries,
            backoff_policy=exponential_backoff(
                initial_seconds=settings.backoff_initial_seconds,
                multiplier=settings.backoff_multiplier,
            ),
            sleep=sleep,
        )

    def batch_geocode(self, requests: Sequence[GeocodeRequest]) -> list[GeocodeResult]:
        """
        Geocode every request; the result list matches the input in length and order.
        """

        if not requests:
            return []
        if self._provider is None:
            return [GeocodeResult.failed("No geocoding provider configured") for _ in requests]

        results: list[GeocodeResult] = []
        total_batches = (len(requests) + self._batch_size - 1) // self._batch_size
        for batch_number, start in enumerate(range(0, len(requests), self._batch_size), start=1):
            if batch_number > 1 and self._delay_seconds > 0:
                self._sleep(self._delay_seconds)

            batch = list(requests[start : start + self._batch_size])
            results.extend(self._geocode_sub_batch(self._provider, batch))
            logger.debug(
                "Geocoding sub-batch done batch=%s/%s size=%s",
                batch_number,
                total_batches,
                len(batch),
            )

        failed = sum(1 for result in results if not result.is_success)
        logger.info("Geocoding finished requests=%s failed=%s", len(results), failed)
        return results

    def geocode_records(self, records: Sequence[NormalizedStoreRecord]) -> list[GeocodeResult]:
        """
        Geocode records lacking coordinates and write accepted coordinates back.

        Records that already carry both coordinates are left untouched. Returns
        the results for the records that were sent, in record order.
        """

        pending = [record for record in records if not record.has_coordinates()]
        results = self.batch_geocode([build_geocode_request(record) for record in pending])
        for record, result in zip(pending, results):
            if result.is_success:
                record.latitude = result.latitude
                record.longitude = result.longitude
            else:
                record.latitude = None
                record.longitude = None
        return results

    def _geocode_sub_batch(
        self,
        provider: GeocodingProvider,
        batch: list[GeocodeRequest],
    ) -> list[GeocodeResult]:
        geocode = partial(self._geocode_one, provider)
        workers = min(self._max_concurrency, len(batch))
        if workers == 1:
            return [geocode(request) for request in batch]
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="geocode") as executor:
            return list(executor.map(geocode, batch))

    def _geocode_one(self, provider: GeocodingProvider, request: GeocodeRequest) -> GeocodeResult:
        attempt = 0
        while True:
            attempt += 1
            try:
                result = provider.geocode(request)
            except GeocodingProviderError as exc:
                if not exc.retryable or attempt > self._max_retries:
                    logger.warning(
                        "Geocode failed attempts=%s retryable=%s error=%s",
                        attempt,
                        exc.retryable,
                        exc.message,
                    )
                    return GeocodeResult.failed(exc.message, provider=exc.provider)

                wait_seconds = self._backoff_policy(attempt)
                logger.warning(
                    "Geocode retry attempt=%s/%s wait_seconds=%.2f error=%s",
                    attempt,
                    self._max_retries,
                    wait_seconds,
                    exc.message,
                )
                if wait_seconds > 0:
                    self._sleep(wait_seconds)
                continue
            except Exception as exc:
                logger.exception(
                    "Geocode raised unexpectedly provider=%s attempt=%s",
                    getattr(provider, "name", "unknown"),
                    attempt,
                )
                return GeocodeResult.failed(
                    f"Unexpected geocoding error ({exc.__class__.__name__})",
                    provider=getattr(provider, "name", None),
                )

            if not result.is_success:
                return result
            if not valid_coordinates(result.latitude, result.longitude):
                logger.warning(
                    "Geocode returned out-of-range coordinates provider=%s",
                    result.provider,
                )
                return GeocodeResult.failed(
                    "Provider returned invalid coordinates",
                    provider=result.provider,
                )
            return result
