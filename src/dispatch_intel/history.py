from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Sequence

import pandas as pd

from dispatch_intel.models import HistoricalSummary, IncidentRecord, SeasonalPattern, TimePattern

logger = logging.getLogger(__name__)

SEASONS = ("spring", "summer", "autumn", "winter")
DEFAULT_RESPONSE_TIME_MINUTES = 8.5
MAX_PLAUSIBLE_RESPONSE_MINUTES = 180
SEASON_MULTIPLIER_FLOOR = 0.5
HOUR_MULTIPLIER_FLOOR = 0.3


def season_for_month(month: int) -> str:
    if 3 <= month <= 5:
        return "spring"
    if 6 <= month <= 8:
        return "summer"
    if 9 <= month <= 11:
        return "autumn"
    return "winter"


def period_for_hour(hour: int) -> str:
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    return "night"


def average_response_time(records: Sequence[IncidentRecord]) -> float:
    """Mean response time in minutes.

    An explicit response time is trusted as recorded. Otherwise the
    created/resolved gap is used, and gaps outside (0, 180) minutes are
    dropped as outliers.
    """
    total = 0.0
    valid = 0
    for record in records:
        if record.response_time:
            total += record.response_time
            valid += 1
        elif record.created_at and record.resolved_at:
            minutes = (record.resolved_at - record.created_at).total_seconds() / 60
            if 0 < minutes < MAX_PLAUSIBLE_RESPONSE_MINUTES:
                total += minutes
                valid += 1

    if valid == 0:
        return DEFAULT_RESPONSE_TIME_MINUTES
    return total / valid


def _creation_frame(records: Sequence[IncidentRecord]) -> pd.DataFrame:
    created = pd.to_datetime([r.created_at for r in records if r.created_at is not None], utc=True)
    return pd.DataFrame({"month": created.month, "hour": created.hour})


def seasonal_pattern(records: Sequence[IncidentRecord], as_of: datetime) -> SeasonalPattern:
    current_season = season_for_month(as_of.month)
    if not records:
        return SeasonalPattern(
            counts={season: 0 for season in SEASONS},
            percentages={season: 0.0 for season in SEASONS},
            peak_season="summer",
            current_season=current_season,
            risk_multiplier=1.0,
            total_incidents=0,
        )

    frame = _creation_frame(records)
    by_season = frame["month"].map(season_for_month).value_counts()
    counts = {season: int(by_season.get(season, 0)) for season in SEASONS}

    total = len(records)
    percentages = {season: counts[season] / total * 100 for season in SEASONS}
    # ties go to the later season
    peak_season = max(reversed(SEASONS), key=counts.__getitem__)

    max_count = max(counts.values())
    multiplier = counts[current_season] / max_count if max_count > 0 else 1.0

    return SeasonalPattern(
        counts=counts,
        percentages=percentages,
        peak_season=peak_season,
        current_season=current_season,
        risk_multiplier=max(multiplier, SEASON_MULTIPLIER_FLOOR),
        total_incidents=total,
    )


def time_pattern(records: Sequence[IncidentRecord], as_of: datetime) -> TimePattern:
    current_hour = as_of.hour
    if not records:
        return TimePattern(
            hourly_distribution=[0] * 24,
            peak_hour=14,
            peak_period="afternoon",
            current_hour=current_hour,
            risk_multiplier=1.0,
            total_incidents=0,
        )

    frame = _creation_frame(records)
    by_hour = frame["hour"].value_counts().reindex(range(24), fill_value=0)
    distribution: List[int] = [int(count) for count in by_hour.tolist()]

    max_count = max(distribution)
    peak_hour = distribution.index(max_count)
    multiplier = distribution[current_hour] / max_count if max_count > 0 else 1.0

    return TimePattern(
        hourly_distribution=distribution,
        peak_hour=peak_hour,
        peak_period=period_for_hour(peak_hour),
        current_hour=current_hour,
        risk_multiplier=max(multiplier, HOUR_MULTIPLIER_FLOOR),
        total_incidents=len(records),
    )


def summarize(records: Sequence[IncidentRecord], as_of: datetime) -> HistoricalSummary:
    logger.debug("Summarising %d nearby incidents as of %s", len(records), as_of.isoformat())
    return HistoricalSummary(
        total_incidents=len(records),
        average_response_time=average_response_time(records),
        seasonal_pattern=seasonal_pattern(records, as_of),
        time_pattern=time_pattern(records, as_of),
    )
