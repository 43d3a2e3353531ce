from __future__ import annotations

from dataclasses import replace

from insights.models import SymptomEntry

SEVERE_AVERAGE = 7.0
MODERATE_AVERAGE = 4.0
ATTACK_SCORE_WEIGHT = 5
MAX_OVERALL_SCORE = 10


def _average_intensity(entry: SymptomEntry) -> float:
    # missing optional symptoms count as 0; the denominator is always 4
    total = (
        entry.wheezing
        + entry.cough
        + (entry.breathlessness or 0)
        + (entry.chest_tightness or 0)
    )
    return total / 4.0


def classify_severity(entry: SymptomEntry) -> tuple[str, bool]:
    average = _average_intensity(entry)
    if entry.attack or average >= SEVERE_AVERAGE:
        severity = "severe"
    elif average >= MODERATE_AVERAGE:
        severity = "moderate"
    else:
        severity = "mild"
    follow_up_required = bool(entry.attack) or severity == "severe"
    return severity, follow_up_required


# display score, independent from severity
def overall_score(entry: SymptomEntry) -> int:
    score = (
        entry.wheezing
        + entry.cough
        + (entry.breathlessness or 0)
        + (entry.chest_tightness or 0)
    )
    if entry.attack:
        score += ATTACK_SCORE_WEIGHT
    return min(score, MAX_OVERALL_SCORE)


def risk_band(entry: SymptomEntry) -> str:
    score = overall_score(entry)
    if entry.attack or score >= 8:
        return "high"
    if score >= 5:
        return "medium"
    return "low"


def derive_entry_fields(entry: SymptomEntry) -> SymptomEntry:
    """Return a copy of ``entry`` with every derived field recomputed.

    Used on both create and update so stored severities never drift from the
    symptom values; whatever derived values the input carries are discarded.
    """
    severity, follow_up_required = classify_severity(entry)
    return replace(
        entry,
        severity=severity,
        follow_up_required=follow_up_required,
        overall_score=overall_score(entry),
        risk_band=risk_band(entry),
    )
