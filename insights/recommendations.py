from __future__ import annotations

from typing import Any

HIGH_AQI_PERCENTAGE_THRESHOLD = 50
FREQUENT_ATTACK_THRESHOLD = 2


def _append_unique(recommendations: list[dict[str, str]], row: dict[str, str]) -> None:
    if any(existing["type"] == row["type"] for existing in recommendations):
        return
    recommendations.append(row)


# rules run in a fixed order; each one is independent and may be absent
def recommend(summary: dict[str, Any], correlations: dict[str, Any]) -> list[dict[str, str]]:
    recommendations: list[dict[str, str]] = []

    aqi_block = correlations.get("aqi") or {}
    if int(aqi_block.get("high_aqi_attack_percentage") or 0) > HIGH_AQI_PERCENTAGE_THRESHOLD:
        _append_unique(
            recommendations,
            {
                "type": "environmental",
                "priority": "high",
                "message": (
                    "Consider checking air quality before going outside "
                    "and wearing a mask on high AQI days"
                ),
            },
        )

    most_common = (correlations.get("triggers") or {}).get("most_common") or []
    if most_common:
        top_trigger = most_common[0]["trigger"]
        _append_unique(
            recommendations,
            {
                "type": "trigger_management",
                "priority": "medium",
                "message": (
                    f"Your most common trigger is {top_trigger}. Consider discussing "
                    "avoidance strategies with your healthcare provider"
                ),
            },
        )

    if int(summary.get("attack_count") or 0) > FREQUENT_ATTACK_THRESHOLD:
        _append_unique(
            recommendations,
            {
                "type": "medical",
                "priority": "high",
                "message": (
                    "You've had multiple attacks recently. Please consult with your "
                    "healthcare provider about your asthma management plan"
                ),
            },
        )
    return recommendations
