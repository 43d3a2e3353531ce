from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, TypeVar

from insights.models import EnvironmentalSample, SymptomEntry
from insights.severity import classify_severity
from insights.temporal_join import DEFAULT_JOIN_TOLERANCE, join_attacks

HIGH_AQI_THRESHOLD = 100
TOP_TRIGGER_LIMIT = 5
TOP_TIME_BUCKETS = 3
DAY_NAMES = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)
NO_ATTACKS_MESSAGE = "No attacks recorded in this period"

_Timestamped = TypeVar("_Timestamped", SymptomEntry, EnvironmentalSample)


@dataclass
class CorrelationResult:
    summary: dict[str, Any]
    correlations: dict[str, Any]
    trends: dict[str, Any]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def window_bounds(window_days: int, now: datetime) -> tuple[datetime, datetime]:
    return now - timedelta(days=window_days), now


def filter_window(
    records: Iterable[_Timestamped],
    start: datetime,
    end: datetime,
) -> list[_Timestamped]:
    return [record for record in records if start <= record.timestamp <= end]


def _mean(values: list[int]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def summarize(entries: list[SymptomEntry]) -> dict[str, Any]:
    distribution = {level: 0 for level in ("mild", "moderate", "severe")}
    for entry in entries:
        # stored severity wins; legacy rows without one are classified on the fly
        severity = entry.severity or classify_severity(entry)[0]
        distribution[severity] = distribution.get(severity, 0) + 1
    return {
        "total_entries": len(entries),
        "attack_count": sum(1 for entry in entries if entry.attack),
        "average_wheezing": _mean([entry.wheezing for entry in entries]),
        "average_cough": _mean([entry.cough for entry in entries]),
        "severity_distribution": distribution,
    }


def aqi_correlation(
    entries: list[SymptomEntry],
    samples: list[EnvironmentalSample],
    tolerance: timedelta = DEFAULT_JOIN_TOLERANCE,
) -> dict[str, Any]:
    joined = join_attacks(entries, samples, tolerance)
    total_attacks = len(joined)
    joined_attacks = sum(1 for _, sample in joined if sample is not None)
    high_aqi_attacks = sum(
        1
        for _, sample in joined
        if sample is not None and sample.aqi is not None and sample.aqi >= HIGH_AQI_THRESHOLD
    )
    if total_attacks == 0:
        return {
            "high_aqi_attack_percentage": 0,
            "high_aqi_attacks": 0,
            "joined_attacks": 0,
            "total_attacks": 0,
            "message": NO_ATTACKS_MESSAGE,
        }
    # numerator counts joined attacks only, denominator is every attack in the window
    percentage = round_half_up(100.0 * high_aqi_attacks / total_attacks)
    return {
        "high_aqi_attack_percentage": percentage,
        "high_aqi_attacks": high_aqi_attacks,
        "joined_attacks": joined_attacks,
        "total_attacks": total_attacks,
        "message": f"{percentage}% of your attacks occurred when AQI was ≥ {HIGH_AQI_THRESHOLD}",
    }


def trigger_correlation(entries: list[SymptomEntry]) -> dict[str, Any]:
    # first-seen means first logged, whatever order the fetcher returned
    chronological = [
        entry for _, entry in sorted(enumerate(entries), key=lambda row: (row[1].timestamp, row[0]))
    ]
    counts: dict[str, int] = {}
    for entry in chronological:
        for trigger in dict.fromkeys(entry.triggers):
            counts[trigger] = counts.get(trigger, 0) + 1
    # sorted() is stable, so equal counts keep first-seen order
    ranked = sorted(counts.items(), key=lambda row: -row[1])[:TOP_TRIGGER_LIMIT]
    total_entries = len(entries)
    return {
        "most_common": [
            {
                "trigger": trigger,
                "count": count,
                "percentage": round_half_up(100.0 * count / total_entries),
            }
            for trigger, count in ranked
        ]
    }


def _top_buckets(counts: list[int]) -> list[int]:
    return sorted(range(len(counts)), key=lambda idx: (-counts[idx], idx))[:TOP_TIME_BUCKETS]


def time_patterns(entries: list[SymptomEntry]) -> dict[str, Any]:
    hourly = [0] * 24
    daily = [0] * 7
    for entry in entries:
        ts = entry.timestamp.astimezone(timezone.utc)
        hourly[ts.hour] += 1
        # weekday() is Monday=0; buckets are Sunday=0
        daily[(ts.weekday() + 1) % 7] += 1
    return {
        "time_patterns": {
            "peak_hours": [{"hour": hour, "count": hourly[hour]} for hour in _top_buckets(hourly)],
            "peak_days": [{"day": DAY_NAMES[day], "count": daily[day]} for day in _top_buckets(daily)],
        }
    }


def analyze(
    entries: Iterable[SymptomEntry],
    samples: Iterable[EnvironmentalSample],
    window_days: int,
    *,
    now: datetime | None = None,
    tolerance: timedelta = DEFAULT_JOIN_TOLERANCE,
) -> CorrelationResult:
    now = now or datetime.now(tz=timezone.utc)
    start, end = window_bounds(window_days, now)
    windowed_entries = filter_window(entries, start, end)
    windowed_samples = filter_window(samples, start, end)
    return CorrelationResult(
        summary=summarize(windowed_entries),
        correlations={
            "aqi": aqi_correlation(windowed_entries, windowed_samples, tolerance),
            "triggers": trigger_correlation(windowed_entries),
        },
        trends=time_patterns(windowed_entries),
    )
