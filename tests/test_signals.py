import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from dispatch_intel.errors import UpstreamUnavailable
from dispatch_intel.history import average_response_time, seasonal_pattern, summarize, time_pattern
from dispatch_intel.models import BoundingBox, IncidentRecord, Location, WeatherSignal
from dispatch_intel.signals import (
    DEFAULT_ENVIRONMENT,
    DEFAULT_WEATHER,
    UNAVAILABLE_HISTORY,
    WORKERS_PER_PROVIDER,
    BoundedCaller,
    InMemoryIncidentStore,
    SignalGatherer,
    SimulatedEnvironmentProvider,
    SimulatedWeatherProvider,
    StaticWeatherProvider,
)

CENTER = Location(40.7580, -73.9855)
AS_OF = datetime(2024, 7, 15, 3, 0, tzinfo=timezone.utc)


def _record(incident_id, created_at, location=CENTER, resolved_after=None, response_time=None) -> IncidentRecord:
    resolved = created_at + timedelta(minutes=resolved_after) if resolved_after is not None else None
    return IncidentRecord(
        incident_id=incident_id,
        location=location,
        created_at=created_at,
        resolved_at=resolved,
        response_time=response_time,
    )


def _at(month, hour=12, day=10, year=2024) -> datetime:
    return datetime(year, month, day, hour, 0, tzinfo=timezone.utc)


class _BrokenStore:
    def query_incidents(self, since, bbox=None):
        raise ConnectionError("store offline")


class _SlowWeather:
    def get_weather(self, location):
        time.sleep(0.5)
        return WeatherSignal(40, 10, 29, 0, 0.9)


def test_average_response_time_prefers_explicit_values() -> None:
    records = [_record("a", _at(7), response_time=10), _record("b", _at(7), response_time=20)]
    assert average_response_time(records) == pytest.approx(15)


def test_average_response_time_from_timestamps_ignores_outliers() -> None:
    records = [
        _record("a", _at(7), resolved_after=12),
        _record("b", _at(7), resolved_after=200),
        _record("c", _at(7), resolved_after=-5),
    ]
    assert average_response_time(records) == pytest.approx(12)


def test_average_response_time_defaults() -> None:
    assert average_response_time([]) == 8.5
    assert average_response_time([_record("a", _at(7), resolved_after=400)]) == 8.5


def test_seasonal_pattern_counts_and_multiplier() -> None:
    records = [_record(str(n), _at(7)) for n in range(3)] + [_record("w", _at(1))]

    summer = seasonal_pattern(records, AS_OF)
    assert summer.counts == {"spring": 0, "summer": 3, "autumn": 0, "winter": 1}
    assert summer.percentages["summer"] == pytest.approx(75.0)
    assert summer.peak_season == "summer"
    assert summer.current_season == "summer"
    assert summer.risk_multiplier == 1.0

    autumn = seasonal_pattern(records, _at(10))
    assert autumn.current_season == "autumn"
    assert autumn.risk_multiplier == 0.5


def test_seasonal_peak_ties_go_to_later_season() -> None:
    records = [_record("s", _at(4)), _record("a", _at(10))]
    assert seasonal_pattern(records, AS_OF).peak_season == "autumn"


def test_time_pattern_histogram() -> None:
    records = [_record("a", _at(7, hour=14)), _record("b", _at(7, hour=14)), _record("c", _at(7, hour=3))]

    pattern = time_pattern(records, AS_OF)
    assert len(pattern.hourly_distribution) == 24
    assert pattern.hourly_distribution[14] == 2
    assert pattern.peak_hour == 14
    assert pattern.peak_period == "afternoon"
    assert pattern.current_hour == 3
    assert pattern.risk_multiplier == pytest.approx(0.5)

    quiet_hour = time_pattern(records, AS_OF.replace(hour=5))
    assert quiet_hour.risk_multiplier == 0.3


def test_empty_history_uses_default_patterns() -> None:
    summary = summarize([], AS_OF)

    assert summary.total_incidents == 0
    assert summary.average_response_time == 8.5
    assert summary.seasonal_pattern.peak_season == "summer"
    assert summary.seasonal_pattern.risk_multiplier == 1.0
    assert summary.time_pattern.peak_hour == 14
    assert summary.time_pattern.peak_period == "afternoon"
    assert summary.time_pattern.hourly_distribution == [0] * 24


def test_historical_summary_filters_by_radius_and_lookback() -> None:
    near = Location(40.7600, -73.9855)
    far = Location(40.9500, -73.9855)
    store = InMemoryIncidentStore(
        [
            _record("near", AS_OF - timedelta(days=30), location=near),
            _record("far", AS_OF - timedelta(days=30), location=far),
            _record("stale", AS_OF - timedelta(days=400), location=near),
        ]
    )
    gatherer = SignalGatherer(incident_store=store)

    summary = gatherer.get_historical_summary(CENTER, AS_OF)
    assert summary.total_incidents == 1
    assert summary.seasonal_pattern.total_incidents == 1


def test_historical_summary_degrades_when_store_fails() -> None:
    gatherer = SignalGatherer(incident_store=_BrokenStore())

    summary = gatherer.get_historical_summary(CENTER, AS_OF)
    assert summary.total_incidents == 0
    assert summary.average_response_time == 0
    assert summary.seasonal_pattern is None


def test_historical_summary_without_store_is_empty_history() -> None:
    summary = SignalGatherer().get_historical_summary(CENTER, AS_OF)
    assert summary.total_incidents == 0
    assert summary.average_response_time == 8.5


def test_slow_weather_provider_times_out_to_defaults() -> None:
    gatherer = SignalGatherer(weather_provider=_SlowWeather(), timeout=0.05)
    assert gatherer.get_weather(CENTER) == DEFAULT_WEATHER


def test_static_weather_provider_passes_through() -> None:
    signal = WeatherSignal(31, 25, 21, 0.0, 0.75)
    assert SignalGatherer(weather_provider=StaticWeatherProvider(signal)).get_weather(CENTER) == signal


def test_simulated_signals_stay_in_documented_ranges() -> None:
    weather_provider = SimulatedWeatherProvider()
    environment_provider = SimulatedEnvironmentProvider()
    for _ in range(50):
        weather = weather_provider.get_weather(CENTER)
        assert 25 <= weather.temperature <= 45
        assert 30 <= weather.humidity <= 80
        assert 0 <= weather.wind_speed <= 30
        assert 0 <= weather.precipitation <= 1
        assert 0 <= weather.drought_index <= 1

        env = environment_provider.get_environmental_signal(CENTER)
        assert 0 <= env.vegetation_dryness <= 1
        assert 50 <= env.air_quality <= 150


def test_seeded_simulation_is_deterministic_per_location() -> None:
    first = SimulatedWeatherProvider("seed").get_weather(CENTER)
    second = SimulatedWeatherProvider("seed").get_weather(CENTER)
    elsewhere = SimulatedWeatherProvider("seed").get_weather(Location(34.05, -118.25))

    assert first == second
    assert first != elsewhere


def test_default_environment_is_fully_populated() -> None:
    assert DEFAULT_ENVIRONMENT.air_quality == 100.0
    assert DEFAULT_WEATHER.drought_index == 0.5


def test_bounding_box_covers_radius() -> None:
    box = BoundingBox.around(CENTER, 5.0)
    assert box.contains(Location(40.7580 + 0.044, -73.9855))
    assert not box.contains(Location(40.7580 + 0.05, -73.9855))
    assert box.contains(Location(40.7580, -73.9855 - 0.058))


def test_hung_store_does_not_starve_other_providers() -> None:
    release = threading.Event()

    class _HangingStore:
        def query_incidents(self, since, bbox=None):
            release.wait(5)
            return []

    signal = WeatherSignal(40, 10, 25, 0, 0.9)
    gatherer = SignalGatherer(
        incident_store=_HangingStore(), weather_provider=StaticWeatherProvider(signal), timeout=0.05
    )
    try:
        for _ in range(WORKERS_PER_PROVIDER * 3):
            assert gatherer.get_historical_summary(CENTER, AS_OF) == UNAVAILABLE_HISTORY
        assert gatherer.get_weather(CENTER) == signal
    finally:
        release.set()


def test_bounded_caller_refuses_work_while_saturated() -> None:
    release = threading.Event()
    caller = BoundedCaller("feed", max_workers=1)
    try:
        with pytest.raises(UpstreamUnavailable):
            caller.call(0.05, release.wait, 5)
        assert caller.in_flight == 1

        started = time.monotonic()
        with pytest.raises(UpstreamUnavailable, match="still has 1 calls running"):
            caller.call(5, lambda: "never runs")
        assert time.monotonic() - started < 1
    finally:
        release.set()


def test_bounding_box_wraps_at_antimeridian() -> None:
    box = BoundingBox.around(Location(-17.0, 179.99), 5.0)

    assert box.crosses_antimeridian
    assert -180 <= box.min_longitude <= 180 and -180 <= box.max_longitude <= 180
    assert box.contains(Location(-17.0, -179.99))
    assert box.contains(Location(-17.0, 179.97))
    assert not box.contains(Location(-17.0, 0.0))


def test_history_counts_incidents_across_antimeridian() -> None:
    center = Location(-17.0, 179.99)
    store = InMemoryIncidentStore([_record("east", AS_OF - timedelta(days=3), location=Location(-17.0, -179.99))])

    summary = SignalGatherer(incident_store=store).get_historical_summary(center, AS_OF)
    assert summary.total_incidents == 1
