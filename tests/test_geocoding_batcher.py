"""
Tests for GeocodingBatcher.

Coverage:
- order and length of results across sub-batches
- per-request failure isolation
- retry with injected backoff (no real sleeping)
- out-of-range provider coordinates
- record write-back and the no-provider case
"""

from __future__ import annotations

import pytest
from conftest import FakeGeocodingProvider, make_record, no_results

from app.config import GeocodingSettings
from app.domain.store_import import GeocodeRequest, GeocodeResult
from app.errors import GeocodingProviderError
from app.services.geocoding_batcher import GeocodingBatcher, exponential_backoff


def _requests(count: int) -> list[GeocodeRequest]:
    return [
        GeocodeRequest(address=f"{index} Main Street", city="Berlin", postcode="10115", country="Germany")
        for index in range(count)
    ]


def _address_number(request: GeocodeRequest) -> int:
    return int(request.address.split(" ", 1)[0])


class _SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


# ---------------------------------------------------------------------------
# Backoff policy
# ---------------------------------------------------------------------------


class TestExponentialBackoff:
    def test_doubles_and_caps(self) -> None:
        policy = exponential_backoff(initial_seconds=0.5, multiplier=2.0, max_seconds=1.5)

        assert [policy(n) for n in (1, 2, 3, 4)] == [0.5, 1.0, 1.5, 1.5]

    def test_is_pure(self) -> None:
        policy = exponential_backoff(initial_seconds=1.0, multiplier=3.0)

        assert policy(3) == policy(3) == 9.0


# ---------------------------------------------------------------------------
# Batching
# ---------------------------------------------------------------------------


class TestBatchGeocode:
    def test_preserves_order_and_isolates_failures(self) -> None:
        def script(request: GeocodeRequest, attempt: int) -> GeocodeResult:
            number = _address_number(request)
            if number % 4 == 0:
                raise no_results(request.address)
            return GeocodeResult.success(latitude=float(number), longitude=float(number) / 2, provider="fake")

        provider = FakeGeocodingProvider(script)
        batcher = GeocodingBatcher(provider=provider, batch_size=10, max_concurrency=3, sleep=_SleepRecorder())

        results = batcher.batch_geocode(_requests(40))

        assert len(results) == 40
        assert sum(1 for result in results if not result.is_success) == 10
        for index, result in enumerate(results):
            if index % 4 == 0:
                assert result.status == "failed"
                assert result.error is not None
            else:
                assert result.latitude == float(index)
        assert provider.total_calls == 40

    @pytest.mark.parametrize("max_concurrency", [1, 2])
    def test_unexpected_provider_exception_stays_on_its_row(self, max_concurrency: int) -> None:
        def script(request: GeocodeRequest, attempt: int) -> GeocodeResult:
            if _address_number(request) == 1:
                raise KeyError("geometry")
            return GeocodeResult.success(latitude=52.0, longitude=13.0, provider="fake")

        provider = FakeGeocodingProvider(script)
        batcher = GeocodingBatcher(provider=provider, max_concurrency=max_concurrency, sleep=_SleepRecorder())

        results = batcher.batch_geocode(_requests(2))

        assert [result.status for result in results] == ["success", "failed"]
        assert results[1].error == "Unexpected geocoding error (KeyError)"
        assert provider.calls["1 Main Street"] == 1

    def test_delays_between_sub_batches_only(self, fake_provider: FakeGeocodingProvider) -> None:
        sleep = _SleepRecorder()
        batcher = GeocodingBatcher(provider=fake_provider, batch_size=10, delay_seconds=0.1, sleep=sleep)

        batcher.batch_geocode(_requests(25))

        assert sleep.calls == [0.1, 0.1]

    def test_empty_input(self, fake_provider: FakeGeocodingProvider) -> None:
        assert GeocodingBatcher(provider=fake_provider).batch_geocode([]) == []

    def test_without_provider_everything_fails(self) -> None:
        results = GeocodingBatcher(provider=None).batch_geocode(_requests(3))

        assert [result.status for result in results] == ["failed", "failed", "failed"]


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


class TestRetry:
    def test_retryable_errors_are_retried_with_backoff(self) -> None:
        def script(request: GeocodeRequest, attempt: int) -> GeocodeResult:
            if attempt <= 2:
                raise GeocodingProviderError("fake: HTTP 503", provider="fake", retryable=True)
            return GeocodeResult.success(latitude=1.0, longitude=2.0, provider="fake")

        sleep = _SleepRecorder()
        provider = FakeGeocodingProvider(script)
        batcher = GeocodingBatcher(
            provider=provider,
            max_retries=2,
            backoff_policy=exponential_backoff(initial_seconds=0.5),
            sleep=sleep,
        )

        results = batcher.batch_geocode(_requests(1))

        assert results[0].is_success
        assert provider.total_calls == 3
        assert sleep.calls == [0.5, 1.0]

    def test_gives_up_after_max_retries(self) -> None:
        def script(request: GeocodeRequest, attempt: int) -> GeocodeResult:
            raise GeocodingProviderError("fake: timeout", provider="fake", retryable=True)

        provider = FakeGeocodingProvider(script)
        batcher = GeocodingBatcher(provider=provider, max_retries=2, sleep=_SleepRecorder())

        result = batcher.batch_geocode(_requests(1))[0]

        assert result.status == "failed"
        assert result.error == "fake: timeout"
        assert provider.total_calls == 3

    def test_non_retryable_errors_fail_immediately(self) -> None:
        def script(request: GeocodeRequest, attempt: int) -> GeocodeResult:
            raise no_results(request.address)

        provider = FakeGeocodingProvider(script)
        sleep = _SleepRecorder()
        batcher = GeocodingBatcher(provider=provider, max_retries=5, sleep=sleep)

        batcher.batch_geocode(_requests(1))

        assert provider.total_calls == 1
        assert sleep.calls == []

    def test_out_of_range_coordinates_are_rejected(self) -> None:
        provider = FakeGeocodingProvider(
            lambda request, attempt: GeocodeResult.success(latitude=120.0, longitude=10.0, provider="fake")
        )

        result = GeocodingBatcher(provider=provider, sleep=_SleepRecorder()).batch_geocode(_requests(1))[0]

        assert result.status == "failed"
        assert result.latitude is None


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class TestGeocodeRecords:
    def test_only_records_without_coordinates_are_sent(self, fake_provider: FakeGeocodingProvider) -> None:
        located = make_record(1, latitude=48.1, longitude=11.5)
        pending = make_record(2)
        batcher = GeocodingBatcher(provider=fake_provider, sleep=_SleepRecorder())

        results = batcher.geocode_records([located, pending])

        assert len(results) == 1
        assert fake_provider.calls == {"2 Main Street": 1}
        assert (located.latitude, located.longitude) == (48.1, 11.5)
        assert (pending.latitude, pending.longitude) == (52.52, 13.405)

    def test_failed_lookup_clears_partial_coordinates(self) -> None:
        def script(request: GeocodeRequest, attempt: int) -> GeocodeResult:
            raise no_results(request.address)

        provider = FakeGeocodingProvider(script)
        record = make_record(1, latitude=48.1)

        GeocodingBatcher(provider=provider, sleep=_SleepRecorder()).geocode_records([record])

        assert record.latitude is None
        assert record.longitude is None

    def test_from_settings(self, fake_provider: FakeGeocodingProvider) -> None:
        settings = GeocodingSettings(
            batch_size=5,
            delay_ms=250,
            max_concurrency=2,
            max_retries=1,
            backoff_initial_seconds=0.2,
            backoff_multiplier=3.0,
            timeout_seconds=5.0,
            rate_limit_per_second=10.0,
            mapbox_token=None,
            google_api_key=None,
            nominatim_enabled=False,
            nominatim_user_agent="store-bulk-import/test",
        )
        sleep = _SleepRecorder()
        batcher = GeocodingBatcher.from_settings(settings, provider=fake_provider, sleep=sleep)

        batcher.batch_geocode(_requests(11))

        assert sleep.calls == [0.25, 0.25]

    @pytest.mark.parametrize("max_concurrency", [1, 4])
    def test_concurrency_does_not_change_results(self, max_concurrency: int) -> None:
        provider = FakeGeocodingProvider(
            lambda request, attempt: GeocodeResult.success(
                latitude=float(_address_number(request)), longitude=0.0, provider="fake"
            )
        )
        records = [make_record(index) for index in range(23)]

        GeocodingBatcher(provider=provider, batch_size=7, max_concurrency=max_concurrency, sleep=_SleepRecorder()).geocode_records(records)

        assert [record.latitude for record in records] == [float(index) for index in range(23)]
