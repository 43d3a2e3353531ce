import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from psycopg import Error as DatabaseError

from api.db import initialize_database
from api.repositories.auth import resolve_user_from_token
from api.repositories.environmental_samples import (
    insert_sample,
    latest_sample,
    list_samples_since,
)
from api.repositories.symptom_entries import (
    delete_entry,
    get_entry,
    insert_entry,
    list_entries,
    list_entries_since,
    update_entry,
)
from api.schemas import (
    EntryMutationOut,
    EnvironmentalSampleIn,
    EnvironmentalSampleOut,
    InsightReportOut,
    SymptomEntryIn,
    SymptomEntryOut,
    SymptomEntryPatchIn,
    SymptomHistoryOut,
    SymptomStatsOut,
)
from ingestion.environment import build_location, normalize_sample
from ingestion.normalize_entry import apply_entry_patch, normalize_entry
from ingestion.time_utils import parse_utc, period_start
from insights.errors import FetchFailure, InputError
from insights.models import SEVERITY_LEVELS, Location
from insights.report import build_report, build_stats

DEFAULT_WINDOW_DAYS = int(os.getenv("INSIGHTS_DEFAULT_WINDOW_DAYS", "30"))
JOIN_TOLERANCE = timedelta(hours=float(os.getenv("INSIGHTS_JOIN_TOLERANCE_HOURS", "4")))
MAX_PAGE_SIZE = 200


@asynccontextmanager
async def _lifespan(app: FastAPI):
    _ = app
    initialize_database()
    yield


app = FastAPI(
    title="Respiratory Insights API",
    version="0.1.0",
    lifespan=_lifespan,
)
logger = logging.getLogger(__name__)


def _cors_allow_origins() -> list[str]:
    configured = os.getenv("CORS_ALLOW_ORIGINS", "")
    if configured.strip():
        return [origin.strip().rstrip("/") for origin in configured.split(",") if origin.strip()]
    return [
        "http://localhost:8081",
        "http://127.0.0.1:8081",
        "http://localhost:19006",
        "http://127.0.0.1:19006",
    ]


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization is None:
        return None
    if not isinstance(authorization, str):
        return None
    value = authorization.strip()
    if not value:
        return None
    if value.lower().startswith("bearer "):
        token = value[7:].strip()
        return token or None
    return None


def _resolve_request_user_id(
    *,
    explicit_user_id: Optional[int],
    authorization: Optional[str],
) -> int:
    token = _extract_bearer_token(authorization)
    auth_user = resolve_user_from_token(token) if token else None
    if auth_user:
        auth_user_id = int(auth_user["id"])
        if explicit_user_id is not None and int(explicit_user_id) != auth_user_id:
            raise HTTPException(status_code=403, detail="user_id does not match auth token")
        return auth_user_id
    # Allow direct function invocation in tests only when no auth header is provided.
    if (
        explicit_user_id is not None
        and authorization is None
        and os.getenv("APP_ENV", "").strip().lower() == "test"
    ):
        return int(explicit_user_id)
    raise HTTPException(status_code=401, detail="Authentication required")


def _input_error(exc: InputError) -> HTTPException:
    return HTTPException(status_code=400, detail={"field": exc.field, "message": exc.message})


def _env_float(name: str) -> Optional[float]:
    value = os.getenv(name, "").strip()
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


# requests that omit coordinates fall back to the deployment's default location
def _resolve_location(
    lat: Optional[float],
    lon: Optional[float],
    city: Optional[str] = None,
    country: Optional[str] = None,
) -> Location:
    return build_location(
        lat if lat is not None else _env_float("DEFAULT_LAT"),
        lon if lon is not None else _env_float("DEFAULT_LON"),
        city if city is not None else os.getenv("DEFAULT_CITY"),
        country if country is not None else os.getenv("DEFAULT_COUNTRY"),
    )


def _parse_query_datetime(value: Optional[str], field: str) -> Optional[datetime]:
    try:
        return parse_utc(value, strict=True)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"invalid datetime format: {field}")


# user submits a symptom log; severity and follow-up are always derived server side
@app.post("/symptoms", response_model=SymptomEntryOut)
def create_symptom_entry(payload: SymptomEntryIn, authorization: Optional[str] = Header(default=None)):
    user_id = _resolve_request_user_id(
        explicit_user_id=payload.user_id,
        authorization=authorization,
    )
    try:
        entry = normalize_entry(payload.model_dump(exclude={"user_id"}), user_id=user_id)
    except InputError as exc:
        raise _input_error(exc)

    try:
        created = insert_entry(entry)
    except DatabaseError:
        logger.exception("Symptom entry insert failed", extra={"user_id": user_id})
        raise HTTPException(status_code=503, detail="could not store symptom entry")

    if created.follow_up_required:
        logger.info(
            "Severe symptom entry logged, follow-up required",
            extra={"user_id": user_id, "entry_id": created.id},
        )
    return created.to_dict()


@app.get("/symptoms", response_model=SymptomHistoryOut)
def list_symptom_entries(
    page: int = 1,
    limit: int = 50,
    severity: Optional[str] = None,
    has_attack: Optional[bool] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    sort_order: str = "desc",
    user_id: Optional[int] = None,
    authorization: Optional[str] = Header(default=None),
):
    user_id = _resolve_request_user_id(explicit_user_id=user_id, authorization=authorization)
    if page < 1:
        raise HTTPException(status_code=400, detail="page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise HTTPException(status_code=400, detail=f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if severity is not None and severity not in SEVERITY_LEVELS:
        raise HTTPException(status_code=400, detail="severity must be mild, moderate or severe")
    if sort_order.strip().lower() not in {"asc", "desc"}:
        raise HTTPException(status_code=400, detail="sort_order must be asc or desc")

    entries, total = list_entries(
        user_id,
        severity=severity,
        has_attack=has_attack,
        start=_parse_query_datetime(start_date, "start_date"),
        end=_parse_query_datetime(end_date, "end_date"),
        sort_order=sort_order,
        limit=limit,
        offset=(page - 1) * limit,
    )
    total_pages = (total + limit - 1) // limit
    return {
        "entries": [entry.to_dict() for entry in entries],
        "pagination": {
            "current_page": page,
            "total_pages": total_pages,
            "total_entries": total,
            "has_next_page": page < total_pages,
            "has_prev_page": page > 1,
            "limit": limit,
        },
    }


@app.get("/symptoms/insights", response_model=InsightReportOut)
def get_symptom_insights(
    days: Optional[int] = None,
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    user_id: Optional[int] = None,
    authorization: Optional[str] = Header(default=None),
):
    user_id = _resolve_request_user_id(explicit_user_id=user_id, authorization=authorization)
    try:
        # without coordinates every sample in the window is considered
        location_hint = build_location(lat, lon) if lat is not None or lon is not None else None
        report = build_report(
            user_id,
            DEFAULT_WINDOW_DAYS if days is None else days,
            list_entries_since,
            list_samples_since,
            location_hint=location_hint,
            tolerance=JOIN_TOLERANCE,
        )
    except InputError as exc:
        raise _input_error(exc)
    except FetchFailure as exc:
        logger.warning("Insight report unavailable: %s", exc, extra={"user_id": user_id})
        raise HTTPException(status_code=503, detail="history temporarily unavailable")
    return report.to_dict()


@app.get("/symptoms/stats", response_model=SymptomStatsOut)
def get_symptom_stats(
    period: str = "30d",
    user_id: Optional[int] = None,
    authorization: Optional[str] = Header(default=None),
):
    user_id = _resolve_request_user_id(explicit_user_id=user_id, authorization=authorization)
    now = datetime.now(tz=timezone.utc)
    try:
        since = period_start(period, now)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    try:
        return build_stats(user_id, since, list_entries_since, now=now)
    except FetchFailure as exc:
        logger.warning("Symptom stats unavailable: %s", exc, extra={"user_id": user_id})
        raise HTTPException(status_code=503, detail="history temporarily unavailable")


@app.get("/symptoms/{entry_id}", response_model=SymptomEntryOut)
def get_symptom_entry(
    entry_id: int,
    user_id: Optional[int] = None,
    authorization: Optional[str] = Header(default=None),
):
    user_id = _resolve_request_user_id(explicit_user_id=user_id, authorization=authorization)
    try:
        entry = get_entry(entry_id, user_id)
    except DatabaseError:
        logger.exception("Symptom entry lookup failed", extra={"user_id": user_id, "entry_id": entry_id})
        raise HTTPException(status_code=503, detail="could not load symptom entry")
    if entry is None:
        raise HTTPException(status_code=404, detail="Symptom entry not found")
    return entry.to_dict()


# owner-only update; derived fields are recomputed from the merged entry
@app.patch("/symptoms/{entry_id}", response_model=SymptomEntryOut)
def patch_symptom_entry(
    entry_id: int,
    payload: SymptomEntryPatchIn,
    user_id: Optional[int] = None,
    authorization: Optional[str] = Header(default=None),
):
    user_id = _resolve_request_user_id(explicit_user_id=user_id, authorization=authorization)
    try:
        existing = get_entry(entry_id, user_id)
    except DatabaseError:
        logger.exception("Symptom entry lookup failed", extra={"user_id": user_id, "entry_id": entry_id})
        raise HTTPException(status_code=503, detail="could not load symptom entry")
    if existing is None:
        raise HTTPException(status_code=404, detail="Symptom entry not found")
    try:
        updated = apply_entry_patch(existing, payload.model_dump(exclude_unset=True))
    except InputError as exc:
        raise _input_error(exc)
    try:
        saved = update_entry(updated)
    except DatabaseError:
        logger.exception("Symptom entry update failed", extra={"user_id": user_id, "entry_id": entry_id})
        raise HTTPException(status_code=503, detail="could not update symptom entry")
    if saved is None:
        raise HTTPException(status_code=404, detail="Symptom entry not found")
    return saved.to_dict()


@app.delete("/symptoms/{entry_id}", response_model=EntryMutationOut)
def delete_symptom_entry(
    entry_id: int,
    user_id: Optional[int] = None,
    authorization: Optional[str] = Header(default=None),
):
    user_id = _resolve_request_user_id(explicit_user_id=user_id, authorization=authorization)
    try:
        deleted = delete_entry(entry_id, user_id)
    except DatabaseError:
        logger.exception("Symptom entry delete failed", extra={"user_id": user_id, "entry_id": entry_id})
        raise HTTPException(status_code=503, detail="could not delete symptom entry")
    if not deleted:
        raise HTTPException(status_code=404, detail="Symptom entry not found")
    return {"status": "ok", "entry_id": int(entry_id)}


# readings arrive already fetched; risk level is computed here, never accepted from the caller
@app.post("/environment/samples", response_model=EnvironmentalSampleOut)
def create_environmental_sample(
    payload: EnvironmentalSampleIn,
    authorization: Optional[str] = Header(default=None),
):
    _resolve_request_user_id(explicit_user_id=None, authorization=authorization)
    try:
        location = _resolve_location(payload.lat, payload.lon, payload.city, payload.country)
        sample = normalize_sample(
            payload.model_dump(include={"aqi", "temperature", "humidity", "pollen"}),
            location=location,
            timestamp=payload.timestamp,
            raw=payload.raw,
        )
    except InputError as exc:
        raise _input_error(exc)
    try:
        created = insert_sample(sample)
    except DatabaseError:
        logger.exception("Environmental sample insert failed")
        raise HTTPException(status_code=503, detail="could not store environmental sample")
    return created.to_dict()


@app.get("/environment/latest", response_model=EnvironmentalSampleOut)
def get_latest_environment(
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    authorization: Optional[str] = Header(default=None),
):
    _resolve_request_user_id(explicit_user_id=None, authorization=authorization)
    try:
        location = _resolve_location(lat, lon)
    except InputError as exc:
        raise _input_error(exc)
    sample = latest_sample(location.lat, location.lon)
    if sample is None:
        raise HTTPException(status_code=404, detail="No environmental data for this location")
    return sample.to_dict()
