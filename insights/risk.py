from __future__ import annotations

# neutral readings used when a measurement is unavailable so absence never adds risk
NEUTRAL_AQI = 0.0
NEUTRAL_POLLEN = 0.0
NEUTRAL_TEMPERATURE_C = 25.0
NEUTRAL_HUMIDITY_PCT = 60.0

HIGH_RISK_SCORE = 4
MODERATE_RISK_SCORE = 2


def risk_score(
    aqi: float | None = None,
    pollen: float | None = None,
    temperature: float | None = None,
    humidity: float | None = None,
) -> int:
    aqi = NEUTRAL_AQI if aqi is None else aqi
    pollen = NEUTRAL_POLLEN if pollen is None else pollen
    temperature = NEUTRAL_TEMPERATURE_C if temperature is None else temperature
    humidity = NEUTRAL_HUMIDITY_PCT if humidity is None else humidity

    score = 0
    if aqi >= 150:
        score += 2
    elif aqi >= 100:
        score += 1

    if pollen >= 3:
        score += 2
    elif pollen >= 2:
        score += 1

    if temperature >= 35 or temperature <= 15:
        score += 1
    if humidity <= 30 or humidity >= 80:
        score += 1
    return score


def classify_risk(
    aqi: float | None = None,
    pollen: float | None = None,
    temperature: float | None = None,
    humidity: float | None = None,
) -> str:
    score = risk_score(aqi, pollen, temperature, humidity)
    if score >= HIGH_RISK_SCORE:
        return "High"
    if score >= MODERATE_RISK_SCORE:
        return "Moderate"
    return "Low"
