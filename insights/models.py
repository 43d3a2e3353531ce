from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable

TRIGGER_VOCABULARY = (
    "pollen",
    "dust",
    "smoke",
    "exercise",
    "stress",
    "weather",
    "food",
    "medication",
    "pollution",
    "pet_dander",
    "mold",
    "other",
)
SEVERITY_LEVELS = ("mild", "moderate", "severe")
RISK_LEVELS = ("Low", "Moderate", "High")
INDOOR_OUTDOOR_VALUES = ("indoor", "outdoor", "mixed")
ACTIVITY_VALUES = (
    "resting",
    "light_activity",
    "moderate_activity",
    "vigorous_activity",
    "sleeping",
)


@dataclass(frozen=True)
class Medication:
    reliever_used: bool = False
    reliever_doses: int | None = None
    controller_taken: bool = False
    other_medications: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "reliever_used": self.reliever_used,
            "reliever_doses": self.reliever_doses,
            "controller_taken": self.controller_taken,
            "other_medications": list(self.other_medications),
        }


@dataclass(frozen=True)
class EntryContext:
    lat: float | None = None
    lon: float | None = None
    indoor_outdoor: str | None = None
    activity: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "lat": self.lat,
            "lon": self.lon,
            "indoor_outdoor": self.indoor_outdoor,
            "activity": self.activity,
        }


# one logged symptom event; severity/follow_up/overall_score/risk_band are derived
# only by insights.severity.derive_entry_fields
@dataclass(frozen=True)
class SymptomEntry:
    user_id: int
    timestamp: datetime
    wheezing: int
    cough: int
    attack: bool
    breathlessness: int | None = None
    chest_tightness: int | None = None
    triggers: tuple[str, ...] = ()
    peak_flow: float | None = None
    notes: str | None = None
    medication: Medication = field(default_factory=Medication)
    context: EntryContext = field(default_factory=EntryContext)
    id: int | None = None
    severity: str | None = None
    follow_up_required: bool | None = None
    overall_score: int | None = None
    risk_band: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat(),
            "wheezing": self.wheezing,
            "cough": self.cough,
            "breathlessness": self.breathlessness,
            "chest_tightness": self.chest_tightness,
            "attack": self.attack,
            "triggers": list(self.triggers),
            "peak_flow": self.peak_flow,
            "notes": self.notes,
            "medication": self.medication.to_dict(),
            "context": self.context.to_dict(),
            "severity": self.severity,
            "follow_up_required": self.follow_up_required,
            "overall_score": self.overall_score,
            "risk_band": self.risk_band,
        }


@dataclass(frozen=True)
class Location:
    lat: float
    lon: float
    city: str | None = None
    country: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"lat": self.lat, "lon": self.lon, "city": self.city, "country": self.country}


# risk_level is computed from the four readings at creation, never caller supplied
@dataclass(frozen=True)
class EnvironmentalSample:
    location: Location
    timestamp: datetime
    risk_level: str
    aqi: float | None = None
    temperature: float | None = None
    humidity: float | None = None
    pollen: float | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "location": self.location.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "aqi": self.aqi,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "pollen": self.pollen,
            "risk_level": self.risk_level,
        }


@dataclass
class InsightReport:
    summary: dict[str, Any]
    correlations: dict[str, Any]
    trends: dict[str, Any]
    recommendations: list[dict[str, str]]
    period: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "correlations": self.correlations,
            "trends": self.trends,
            "recommendations": [dict(row) for row in self.recommendations],
            "period": {
                "days": self.period["days"],
                "start": self.period["start"].isoformat(),
                "end": self.period["end"].isoformat(),
            },
        }


EntryFetcher = Callable[[int, datetime], Iterable[SymptomEntry]]
SampleFetcher = Callable[[datetime, "Location | None"], Iterable[EnvironmentalSample]]
