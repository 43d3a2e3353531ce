# validate and normalize symptom log payloads sent to /symptoms
# every entry leaves here with its derived fields computed by the severity classifier
# missing/invalid fields raise InputError naming the field

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from ingestion.time_utils import parse_utc
from insights.errors import InputError
from insights.models import (
    ACTIVITY_VALUES,
    INDOOR_OUTDOOR_VALUES,
    TRIGGER_VOCABULARY,
    EntryContext,
    Medication,
    SymptomEntry,
)
from insights.severity import derive_entry_fields

MAX_NOTES_LENGTH = 500
PEAK_FLOW_RANGE = (50, 800)
RELIEVER_DOSES_RANGE = (0, 20)

# fields a patch may touch; user_id and derived fields never come from a client
PATCHABLE_FIELDS = (
    "timestamp",
    "wheezing",
    "cough",
    "breathlessness",
    "chest_tightness",
    "attack",
    "triggers",
    "peak_flow",
    "notes",
    "medication",
    "context",
)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _symptom_level(payload: Mapping[str, Any], field: str, *, required: bool) -> int | None:
    value = payload.get(field)
    if value is None:
        if required:
            raise InputError(field, f"{field} is required")
        return None
    if not _is_number(value) or (isinstance(value, float) and not value.is_integer()):
        raise InputError(field, f"{field} must be an integer between 0 and 10")
    level = int(value)
    if level < 0 or level > 10:
        raise InputError(field, f"{field} must be an integer between 0 and 10")
    return level


def _bounded_number(
    value: Any,
    field: str,
    low: float,
    high: float,
) -> float | None:
    if value is None:
        return None
    if not _is_number(value) or value < low or value > high:
        raise InputError(field, f"{field} must be a number between {low} and {high}")
    return float(value)


def _normalize_triggers(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise InputError("triggers", "triggers must be a list")
    out: list[str] = []
    for raw in value:
        trigger = str(raw).strip().lower()
        if trigger not in TRIGGER_VOCABULARY:
            raise InputError("triggers", f"triggers contains an invalid trigger type: {raw}")
        if trigger not in out:
            out.append(trigger)
    return tuple(out)


def _normalize_timestamp(value: Any, now: datetime) -> datetime:
    if value is None:
        return now
    try:
        parsed = parse_utc(value, strict=True)
    except ValueError as exc:
        raise InputError("timestamp", f"invalid datetime format for timestamp: {value}") from exc
    if parsed is None:
        return now
    if parsed > now:
        raise InputError("timestamp", "timestamp cannot be in the future")
    return parsed


def _normalize_notes(value: Any) -> str | None:
    if value is None:
        return None
    notes = str(value).strip()
    if len(notes) > MAX_NOTES_LENGTH:
        raise InputError("notes", f"notes cannot exceed {MAX_NOTES_LENGTH} characters")
    return notes or None


def _normalize_medication(value: Any) -> Medication:
    if value is None:
        return Medication()
    if not isinstance(value, Mapping):
        raise InputError("medication", "medication must be an object")
    doses = value.get("reliever_doses")
    if doses is not None:
        low, high = RELIEVER_DOSES_RANGE
        if not _is_number(doses) or int(doses) != doses or doses < low or doses > high:
            raise InputError(
                "medication.reliever_doses",
                f"medication.reliever_doses must be an integer between {low} and {high}",
            )
        doses = int(doses)
    others = value.get("other_medications") or []
    if isinstance(others, str) or not isinstance(others, (list, tuple)):
        raise InputError("medication.other_medications", "medication.other_medications must be a list")
    return Medication(
        reliever_used=bool(value.get("reliever_used", False)),
        reliever_doses=doses,
        controller_taken=bool(value.get("controller_taken", False)),
        other_medications=tuple(str(name).strip() for name in others if str(name).strip()),
    )


def _normalize_context(value: Any) -> EntryContext:
    if value is None:
        return EntryContext()
    if not isinstance(value, Mapping):
        raise InputError("context", "context must be an object")
    indoor_outdoor = value.get("indoor_outdoor")
    if indoor_outdoor is not None and indoor_outdoor not in INDOOR_OUTDOOR_VALUES:
        raise InputError("context.indoor_outdoor", f"invalid indoor_outdoor value: {indoor_outdoor}")
    activity = value.get("activity")
    if activity is not None and activity not in ACTIVITY_VALUES:
        raise InputError("context.activity", f"invalid activity value: {activity}")
    return EntryContext(
        lat=_bounded_number(value.get("lat"), "context.lat", -90, 90),
        lon=_bounded_number(value.get("lon"), "context.lon", -180, 180),
        indoor_outdoor=indoor_outdoor,
        activity=activity,
    )


def normalize_entry(
    payload: Mapping[str, Any],
    *,
    user_id: int,
    now: datetime | None = None,
    entry_id: int | None = None,
) -> SymptomEntry:
    now = now or datetime.now(tz=timezone.utc)
    attack = payload.get("attack")
    if attack is None:
        raise InputError("attack", "attack is required")
    if not isinstance(attack, bool):
        raise InputError("attack", "attack must be a boolean")

    low, high = PEAK_FLOW_RANGE
    entry = SymptomEntry(
        id=entry_id,
        user_id=user_id,
        timestamp=_normalize_timestamp(payload.get("timestamp"), now),
        wheezing=_symptom_level(payload, "wheezing", required=True),
        cough=_symptom_level(payload, "cough", required=True),
        breathlessness=_symptom_level(payload, "breathlessness", required=False),
        chest_tightness=_symptom_level(payload, "chest_tightness", required=False),
        attack=attack,
        triggers=_normalize_triggers(payload.get("triggers")),
        peak_flow=_bounded_number(payload.get("peak_flow"), "peak_flow", low, high),
        notes=_normalize_notes(payload.get("notes")),
        medication=_normalize_medication(payload.get("medication")),
        context=_normalize_context(payload.get("context")),
    )
    return derive_entry_fields(entry)


def apply_entry_patch(
    existing: SymptomEntry,
    patch: Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> SymptomEntry:
    """Merge ``patch`` into ``existing`` and re-run validation and classification.

    Ownership is carried over from ``existing``; keys outside PATCHABLE_FIELDS
    (user_id, severity, ...) are ignored.
    """
    current = existing.to_dict()
    merged = {field: current[field] for field in PATCHABLE_FIELDS}
    merged.update({key: value for key, value in patch.items() if key in PATCHABLE_FIELDS})
    return normalize_entry(merged, user_id=existing.user_id, now=now, entry_id=existing.id)
