from __future__ import annotations

import logging
import random
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, List, Optional, Protocol, Sequence

from dispatch_intel import history
from dispatch_intel.errors import UpstreamUnavailable
from dispatch_intel.intelligence import haversine_km
from dispatch_intel.models import (
    BoundingBox,
    EnvironmentalSignal,
    HistoricalSummary,
    IncidentRecord,
    Location,
    MediaAnalysis,
    WeatherSignal,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_RADIUS_KM = 5.0
DEFAULT_LOOKBACK_DAYS = 365
WORKERS_PER_PROVIDER = 4

# midpoints of the simulated ranges
DEFAULT_WEATHER = WeatherSignal(
    temperature=35.0,
    humidity=55.0,
    wind_speed=15.0,
    precipitation=0.5,
    drought_index=0.5,
)
DEFAULT_ENVIRONMENT = EnvironmentalSignal(
    vegetation_dryness=0.5,
    air_quality=100.0,
    proximity_to_risk=0.5,
    building_density=0.5,
)
UNAVAILABLE_HISTORY = HistoricalSummary(total_incidents=0, average_response_time=0.0)


class WeatherProvider(Protocol):
    def get_weather(self, location: Location) -> WeatherSignal: ...


class EnvironmentProvider(Protocol):
    def get_environmental_signal(self, location: Location) -> EnvironmentalSignal: ...


class IncidentStore(Protocol):
    def query_incidents(
        self, since: datetime, bbox: Optional[BoundingBox] = None
    ) -> Iterable[IncidentRecord]: ...


class MediaAnalyzer(Protocol):
    def analyze_media(self, media: Sequence[Any]) -> MediaAnalysis: ...


class BoundedCaller:
    """One upstream's own worker pool; refuses calls while every worker is busy."""

    def __init__(self, name: str, max_workers: int = WORKERS_PER_PROVIDER) -> None:
        self.name = name
        self.max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"gatherer-{name}")
        self._lock = threading.Lock()
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    def _release(self, _future: Optional[Future]) -> None:
        with self._lock:
            self._in_flight -= 1

    def call(self, timeout: float, fn: Callable[..., Any], *args: Any) -> Any:
        with self._lock:
            if self._in_flight >= self.max_workers:
                raise UpstreamUnavailable(f"{self.name} still has {self._in_flight} calls running")
            self._in_flight += 1
        try:
            future = self._executor.submit(fn, *args)
        except RuntimeError as exc:
            self._release(None)
            raise UpstreamUnavailable(f"{self.name} cannot accept calls: {exc}") from exc
        future.add_done_callback(self._release)

        try:
            return future.result(timeout=timeout)
        except FutureTimeout as exc:
            raise UpstreamUnavailable(f"{self.name} timed out after {timeout}s") from exc
        except Exception as exc:
            raise UpstreamUnavailable(f"{self.name} failed: {exc}") from exc


def _rng_for(seed: Optional[str], location: Location) -> random.Random:
    if seed is None:
        return random.Random()
    return random.Random(f"{seed}:{location.latitude:.5f}:{location.longitude:.5f}")


class SimulatedWeatherProvider:
    """Weather readings drawn from the documented ranges.

    With a seed the readings are deterministic per location.
    """

    def __init__(self, seed: Optional[str] = None) -> None:
        self.seed = seed

    def get_weather(self, location: Location) -> WeatherSignal:
        rng = _rng_for(self.seed, location)
        return WeatherSignal(
            temperature=25 + rng.random() * 20,
            humidity=30 + rng.random() * 50,
            wind_speed=rng.random() * 30,
            precipitation=rng.random(),
            drought_index=rng.random(),
        )


class SimulatedEnvironmentProvider:
    def __init__(self, seed: Optional[str] = None) -> None:
        self.seed = seed

    def get_environmental_signal(self, location: Location) -> EnvironmentalSignal:
        rng = _rng_for(self.seed, location)
        return EnvironmentalSignal(
            vegetation_dryness=rng.random(),
            air_quality=50 + rng.random() * 100,
            proximity_to_risk=rng.random(),
            building_density=rng.random(),
        )


class StaticWeatherProvider:
    def __init__(self, signal: WeatherSignal) -> None:
        self.signal = signal

    def get_weather(self, location: Location) -> WeatherSignal:
        return self.signal


class StaticEnvironmentProvider:
    def __init__(self, signal: EnvironmentalSignal) -> None:
        self.signal = signal

    def get_environmental_signal(self, location: Location) -> EnvironmentalSignal:
        return self.signal


class StaticMediaAnalyzer:
    def __init__(self, analysis: MediaAnalysis) -> None:
        self.analysis = analysis

    def analyze_media(self, media: Sequence[Any]) -> MediaAnalysis:
        return self.analysis


class InMemoryIncidentStore:
    def __init__(self, records: Iterable[IncidentRecord] = ()) -> None:
        self.records = tuple(records)

    def query_incidents(self, since: datetime, bbox: Optional[BoundingBox] = None) -> List[IncidentRecord]:
        found = [r for r in self.records if r.created_at is not None and r.created_at >= since]
        if bbox is not None:
            found = [r for r in found if bbox.contains(r.location)]
        found.sort(key=lambda r: r.created_at, reverse=True)
        return found


class SignalGatherer:
    """Collects the three factor bundles the scorer needs."""

    def __init__(
        self,
        incident_store: Optional[IncidentStore] = None,
        weather_provider: Optional[WeatherProvider] = None,
        environment_provider: Optional[EnvironmentProvider] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        radius_km: float = DEFAULT_RADIUS_KM,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
    ) -> None:
        self.incident_store = incident_store
        self.weather_provider = weather_provider or SimulatedWeatherProvider()
        self.environment_provider = environment_provider or SimulatedEnvironmentProvider()
        self.timeout = timeout
        self.radius_km = radius_km
        self.lookback_days = lookback_days
        self._weather_calls = BoundedCaller("weather provider")
        self._environment_calls = BoundedCaller("environment provider")
        self._store_calls = BoundedCaller("incident store")

    def get_weather(self, location: Location) -> WeatherSignal:
        try:
            return self._weather_calls.call(self.timeout, self.weather_provider.get_weather, location)
        except UpstreamUnavailable:
            logger.warning("Weather unavailable for %s, using defaults", location, exc_info=True)
            return DEFAULT_WEATHER

    def get_environmental_signal(self, location: Location) -> EnvironmentalSignal:
        try:
            return self._environment_calls.call(
                self.timeout, self.environment_provider.get_environmental_signal, location
            )
        except UpstreamUnavailable:
            logger.warning("Environmental data unavailable for %s, using defaults", location, exc_info=True)
            return DEFAULT_ENVIRONMENT

    def nearby_incidents(self, location: Location, as_of: datetime) -> List[IncidentRecord]:
        if self.incident_store is None:
            return []
        since = as_of - timedelta(days=self.lookback_days)
        bbox = BoundingBox.around(location, self.radius_km)
        records = self._store_calls.call(self.timeout, self._fetch, since, bbox)
        return [r for r in records if haversine_km(location, r.location) <= self.radius_km]

    def _fetch(self, since: datetime, bbox: BoundingBox) -> List[IncidentRecord]:
        return list(self.incident_store.query_incidents(since, bbox))

    def get_historical_summary(self, location: Location, as_of: datetime) -> HistoricalSummary:
        try:
            records = self.nearby_incidents(location, as_of)
        except UpstreamUnavailable:
            logger.warning("Incident history unavailable for %s", location, exc_info=True)
            return UNAVAILABLE_HISTORY
        return history.summarize(records, as_of)
