from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from insights.correlation import analyze, filter_window, summarize, window_bounds
from insights.errors import InputError
from insights.models import EntryFetcher, InsightReport, Location, SampleFetcher, SymptomEntry
from insights.recommendations import recommend
from insights.temporal_join import DEFAULT_JOIN_TOLERANCE


def _require_window_days(window_days: Any) -> int:
    if isinstance(window_days, bool) or not isinstance(window_days, int) or window_days <= 0:
        raise InputError("days", "days must be a positive integer")
    return window_days


def build_report(
    user_id: int,
    window_days: int,
    entry_fetcher: EntryFetcher,
    sample_fetcher: SampleFetcher,
    *,
    now: datetime | None = None,
    location_hint: Location | None = None,
    tolerance: timedelta = DEFAULT_JOIN_TOLERANCE,
) -> InsightReport:
    """Assemble the insight report for one user over a trailing window.

    Fetchers are called once each; anything they raise reaches the caller
    untouched and no partial report is produced. ``now`` is injectable so the
    same history always yields the same report.
    """
    window_days = _require_window_days(window_days)
    now = now or datetime.now(tz=timezone.utc)
    start, end = window_bounds(window_days, now)

    entries = list(entry_fetcher(user_id, start))
    samples = list(sample_fetcher(start, location_hint))

    result = analyze(entries, samples, window_days, now=now, tolerance=tolerance)
    recommendations = recommend(result.summary, result.correlations)
    return InsightReport(
        summary=result.summary,
        correlations=result.correlations,
        trends=result.trends,
        recommendations=recommendations,
        period={"days": window_days, "start": start, "end": end},
    )


def _optional_mean(values: list[int | None]) -> float | None:
    # entries that never recorded the symptom are left out of its average
    present = [value for value in values if value is not None]
    if not present:
        return None
    return sum(present) / len(present)


def build_stats(
    user_id: int,
    since: datetime,
    entry_fetcher: EntryFetcher,
    *,
    now: datetime | None = None,
) -> dict[str, Any]:
    now = now or datetime.now(tz=timezone.utc)
    entries: list[SymptomEntry] = filter_window(entry_fetcher(user_id, since), since, now)
    summary = summarize(entries)
    distribution = summary["severity_distribution"]
    return {
        "total_entries": summary["total_entries"],
        "total_attacks": summary["attack_count"],
        "average_wheezing": summary["average_wheezing"],
        "average_cough": summary["average_cough"],
        "average_breathlessness": _optional_mean([entry.breathlessness for entry in entries]),
        "average_chest_tightness": _optional_mean([entry.chest_tightness for entry in entries]),
        "severe_cases": distribution["severe"],
        "moderate_cases": distribution["moderate"],
        "mild_cases": distribution["mild"],
        "period": {"start": since.isoformat(), "end": now.isoformat()},
    }
