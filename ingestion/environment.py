from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from ingestion.time_utils import parse_utc
from insights.errors import InputError
from insights.models import EnvironmentalSample, Location
from insights.risk import classify_risk

logger = logging.getLogger(__name__)

MAX_POLLEN_SCORE = 5.0


def _reading(readings: Mapping[str, Any], field: str, low: float, high: float) -> float | None:
    value = readings.get(field)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InputError(field, f"{field} must be a number")
    if value < low or value > high:
        raise InputError(field, f"{field} must be between {low} and {high}")
    return float(value)


def build_location(
    lat: Any,
    lon: Any,
    city: str | None = None,
    country: str | None = None,
) -> Location:
    for field, value, bound in (("lat", lat, 90), ("lon", lon, 180)):
        if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InputError(field, f"{field} is required")
        if value < -bound or value > bound:
            raise InputError(field, f"{field} must be between {-bound} and {bound}")
    return Location(
        lat=float(lat),
        lon=float(lon),
        city=(city or "").strip() or None,
        country=(country or "").strip() or None,
    )


# rough pollen score (0-5) from weather when no pollen feed is available
def estimate_pollen_from_weather(temperature: float | None, humidity: float | None) -> float:
    if not temperature or not humidity:
        return 0.0
    risk = 0.0
    if 15 <= temperature <= 25:
        risk += 2
    elif 25 < temperature <= 30:
        risk += 1.5
    elif temperature > 30 or temperature < 10:
        risk += 0.5
    if 30 <= humidity <= 50:
        risk += 2
    elif 50 < humidity <= 70:
        risk += 1
    elif humidity > 70:
        risk += 0.5
    return min(MAX_POLLEN_SCORE, risk)


def normalize_sample(
    readings: Mapping[str, Any],
    *,
    location: Location,
    timestamp: str | datetime | None = None,
    raw: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> EnvironmentalSample:
    now = now or datetime.now(tz=timezone.utc)
    try:
        sampled_at = parse_utc(timestamp, strict=True) or now
    except ValueError as exc:
        raise InputError("timestamp", f"invalid datetime format for timestamp: {timestamp}") from exc

    aqi = _reading(readings, "aqi", 0, 1000)
    temperature = _reading(readings, "temperature", -90, 60)
    humidity = _reading(readings, "humidity", 0, 100)
    pollen = _reading(readings, "pollen", 0, MAX_POLLEN_SCORE)
    audit = dict(raw or {})
    if pollen is None:
        pollen = estimate_pollen_from_weather(temperature, humidity)
        audit["pollen"] = {"estimated": True, "value": pollen}
        logger.info(
            "pollen reading unavailable, estimated from weather",
            extra={"lat": location.lat, "lon": location.lon, "pollen": pollen},
        )

    return EnvironmentalSample(
        location=location,
        timestamp=sampled_at,
        aqi=aqi,
        temperature=temperature,
        humidity=humidity,
        pollen=pollen,
        risk_level=classify_risk(aqi, pollen, temperature, humidity),
        raw=audit,
    )
