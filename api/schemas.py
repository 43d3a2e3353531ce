# standardize base schemas for repeated payload patterns

from typing import Optional

from pydantic import BaseModel, Field


class MedicationIn(BaseModel):
    reliever_used: bool = False
    reliever_doses: Optional[int] = None
    controller_taken: bool = False
    other_medications: list[str] = Field(default_factory=list)


class EntryContextIn(BaseModel):
    lat: Optional[float] = None
    lon: Optional[float] = None
    indoor_outdoor: Optional[str] = None
    activity: Optional[str] = None


# Shape of a symptom log submission for /symptoms
# range and vocabulary checks happen in ingestion.normalize_entry so errors name the field
class SymptomEntryIn(BaseModel):
    user_id: Optional[int] = None
    timestamp: Optional[str] = None
    wheezing: Optional[int] = None
    cough: Optional[int] = None
    breathlessness: Optional[int] = None
    chest_tightness: Optional[int] = None
    attack: Optional[bool] = None
    triggers: list[str] = Field(default_factory=list)
    peak_flow: Optional[float] = None
    notes: Optional[str] = None
    medication: Optional[MedicationIn] = None
    context: Optional[EntryContextIn] = None


# PATCH body; only fields the client actually sent are applied
class SymptomEntryPatchIn(BaseModel):
    timestamp: Optional[str] = None
    wheezing: Optional[int] = None
    cough: Optional[int] = None
    breathlessness: Optional[int] = None
    chest_tightness: Optional[int] = None
    attack: Optional[bool] = None
    triggers: Optional[list[str]] = None
    peak_flow: Optional[float] = None
    notes: Optional[str] = None
    medication: Optional[MedicationIn] = None
    context: Optional[EntryContextIn] = None


class SymptomEntryOut(BaseModel):
    id: Optional[int] = None
    user_id: int
    timestamp: str
    wheezing: int
    cough: int
    breathlessness: Optional[int] = None
    chest_tightness: Optional[int] = None
    attack: bool
    triggers: list[str]
    peak_flow: Optional[float] = None
    notes: Optional[str] = None
    medication: MedicationIn
    context: EntryContextIn
    severity: str
    follow_up_required: bool
    overall_score: int
    risk_band: str


class PaginationOut(BaseModel):
    current_page: int
    total_pages: int
    total_entries: int
    has_next_page: bool
    has_prev_page: bool
    limit: int


class SymptomHistoryOut(BaseModel):
    entries: list[SymptomEntryOut]
    pagination: PaginationOut


class EnvironmentalSampleIn(BaseModel):
    lat: Optional[float] = None
    lon: Optional[float] = None
    city: Optional[str] = None
    country: Optional[str] = None
    timestamp: Optional[str] = None
    aqi: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    pollen: Optional[float] = None
    raw: dict = Field(default_factory=dict)


class LocationOut(BaseModel):
    lat: float
    lon: float
    city: Optional[str] = None
    country: Optional[str] = None


class EnvironmentalSampleOut(BaseModel):
    id: Optional[int] = None
    location: LocationOut
    timestamp: str
    aqi: Optional[float] = None
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    pollen: Optional[float] = None
    risk_level: str


class RecommendationOut(BaseModel):
    type: str
    priority: str
    message: str


class InsightPeriodOut(BaseModel):
    days: int
    start: str
    end: str


class InsightReportOut(BaseModel):
    summary: dict
    correlations: dict
    trends: dict
    recommendations: list[RecommendationOut]
    period: InsightPeriodOut


class SymptomStatsOut(BaseModel):
    total_entries: int
    total_attacks: int
    average_wheezing: float
    average_cough: float
    average_breathlessness: Optional[float] = None
    average_chest_tightness: Optional[float] = None
    severe_cases: int
    moderate_cases: int
    mild_cases: int
    period: dict


class EntryMutationOut(BaseModel):
    status: str
    entry_id: int
