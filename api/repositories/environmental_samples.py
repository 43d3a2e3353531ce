from __future__ import annotations

import json
from datetime import datetime

from psycopg import Error as DatabaseError

from api.db import get_connection
from insights.errors import FetchFailure
from insights.models import EnvironmentalSample, Location

# a location hint matches samples taken within this many degrees of it
LOCATION_MATCH_DEGREES = 0.25

_SAMPLE_COLUMNS = """
    id, lat, lon, city, country, sampled_at, aqi, temperature, humidity,
    pollen, risk_level, raw_json
"""


def _row_to_sample(row: dict) -> EnvironmentalSample:
    return EnvironmentalSample(
        id=int(row["id"]),
        location=Location(
            lat=float(row["lat"]),
            lon=float(row["lon"]),
            city=row["city"],
            country=row["country"],
        ),
        timestamp=row["sampled_at"],
        aqi=row["aqi"],
        temperature=row["temperature"],
        humidity=row["humidity"],
        pollen=row["pollen"],
        risk_level=row["risk_level"],
        raw=json.loads(row["raw_json"]) if row["raw_json"] else {},
    )


def insert_sample(sample: EnvironmentalSample) -> EnvironmentalSample:
    conn = get_connection()
    try:
        row = conn.execute(
            f"""
            INSERT INTO environmental_samples (
                lat, lon, city, country, sampled_at, aqi, temperature, humidity,
                pollen, risk_level, raw_json
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_SAMPLE_COLUMNS}
            """,
            (
                sample.location.lat,
                sample.location.lon,
                sample.location.city,
                sample.location.country,
                sample.timestamp,
                sample.aqi,
                sample.temperature,
                sample.humidity,
                sample.pollen,
                sample.risk_level,
                json.dumps(sample.raw),
            ),
        ).fetchone()
        conn.commit()
        return _row_to_sample(row)
    except DatabaseError:
        conn.rollback()
        raise
    finally:
        conn.close()


def latest_sample(lat: float, lon: float) -> EnvironmentalSample | None:
    conn = get_connection()
    try:
        row = conn.execute(
            f"""
            SELECT {_SAMPLE_COLUMNS}
            FROM environmental_samples
            WHERE lat = %s AND lon = %s
            ORDER BY sampled_at DESC, id DESC
            LIMIT 1
            """,
            (float(lat), float(lon)),
        ).fetchone()
    finally:
        conn.close()
    return _row_to_sample(row) if row else None


# history fetcher handed to the insight report builder
def list_samples_since(
    since: datetime,
    location_hint: Location | None = None,
) -> list[EnvironmentalSample]:
    filters = ["sampled_at >= %s"]
    params: list[object] = [since]
    if location_hint is not None:
        filters.append("ABS(lat - %s) <= %s AND ABS(lon - %s) <= %s")
        params.extend(
            [location_hint.lat, LOCATION_MATCH_DEGREES, location_hint.lon, LOCATION_MATCH_DEGREES]
        )
    try:
        conn = get_connection()
        try:
            rows = conn.execute(
                f"""
                SELECT {_SAMPLE_COLUMNS}
                FROM environmental_samples
                WHERE {' AND '.join(filters)}
                ORDER BY sampled_at DESC, id DESC
                """,
                tuple(params),
            ).fetchall()
        finally:
            conn.close()
    except DatabaseError as exc:
        raise FetchFailure("could not load environmental history") from exc
    return [_row_to_sample(row) for row in rows]
