# persistence for symptom entries; every query is scoped to the owning user

from __future__ import annotations

import json
from datetime import datetime

from psycopg import Error as DatabaseError

from api.db import get_connection
from insights.errors import FetchFailure
from insights.models import EntryContext, Medication, SymptomEntry

_ENTRY_COLUMNS = """
    id, user_id, logged_at, wheezing, cough, breathlessness, chest_tightness,
    attack, triggers_json, peak_flow, notes, medication_json, context_json,
    severity, follow_up_required, overall_score, risk_band
"""
_SORT_ORDERS = {"asc": "ASC", "desc": "DESC"}


def _load_json(value: str | None) -> dict:
    if not value:
        return {}
    decoded = json.loads(value)
    return decoded if isinstance(decoded, dict) else {}


def _row_to_entry(row: dict) -> SymptomEntry:
    medication = _load_json(row["medication_json"])
    context = _load_json(row["context_json"])
    return SymptomEntry(
        id=int(row["id"]),
        user_id=int(row["user_id"]),
        timestamp=row["logged_at"],
        wheezing=int(row["wheezing"]),
        cough=int(row["cough"]),
        breathlessness=row["breathlessness"],
        chest_tightness=row["chest_tightness"],
        attack=bool(row["attack"]),
        triggers=tuple(json.loads(row["triggers_json"] or "[]")),
        peak_flow=row["peak_flow"],
        notes=row["notes"],
        medication=Medication(
            reliever_used=bool(medication.get("reliever_used", False)),
            reliever_doses=medication.get("reliever_doses"),
            controller_taken=bool(medication.get("controller_taken", False)),
            other_medications=tuple(medication.get("other_medications") or ()),
        ),
        context=EntryContext(**context),
        severity=row["severity"],
        follow_up_required=bool(row["follow_up_required"]),
        overall_score=row["overall_score"],
        risk_band=row["risk_band"],
    )


def _entry_params(entry: SymptomEntry) -> tuple:
    return (
        entry.timestamp,
        entry.wheezing,
        entry.cough,
        entry.breathlessness,
        entry.chest_tightness,
        entry.attack,
        json.dumps(list(entry.triggers)),
        entry.peak_flow,
        entry.notes,
        json.dumps(entry.medication.to_dict()),
        json.dumps(entry.context.to_dict()),
        entry.severity,
        entry.follow_up_required,
        entry.overall_score,
        entry.risk_band,
    )


def insert_entry(entry: SymptomEntry) -> SymptomEntry:
    conn = get_connection()
    try:
        row = conn.execute(
            f"""
            INSERT INTO symptom_entries (
                user_id, logged_at, wheezing, cough, breathlessness, chest_tightness,
                attack, triggers_json, peak_flow, notes, medication_json, context_json,
                severity, follow_up_required, overall_score, risk_band
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING {_ENTRY_COLUMNS}
            """,
            (entry.user_id, *_entry_params(entry)),
        ).fetchone()
        conn.commit()
        return _row_to_entry(row)
    except DatabaseError:
        conn.rollback()
        raise
    finally:
        conn.close()


def get_entry(entry_id: int, user_id: int) -> SymptomEntry | None:
    conn = get_connection()
    try:
        row = conn.execute(
            f"SELECT {_ENTRY_COLUMNS} FROM symptom_entries WHERE id = %s AND user_id = %s",
            (int(entry_id), int(user_id)),
        ).fetchone()
    finally:
        conn.close()
    return _row_to_entry(row) if row else None


# user_id is only used to scope the update, it is never rewritten
def update_entry(entry: SymptomEntry) -> SymptomEntry | None:
    conn = get_connection()
    try:
        row = conn.execute(
            f"""
            UPDATE symptom_entries
            SET logged_at = %s, wheezing = %s, cough = %s, breathlessness = %s,
                chest_tightness = %s, attack = %s, triggers_json = %s, peak_flow = %s,
                notes = %s, medication_json = %s, context_json = %s, severity = %s,
                follow_up_required = %s, overall_score = %s, risk_band = %s,
                updated_at = NOW()
            WHERE id = %s AND user_id = %s
            RETURNING {_ENTRY_COLUMNS}
            """,
            (*_entry_params(entry), int(entry.id), int(entry.user_id)),
        ).fetchone()
        conn.commit()
    except DatabaseError:
        conn.rollback()
        raise
    finally:
        conn.close()
    return _row_to_entry(row) if row else None


def delete_entry(entry_id: int, user_id: int) -> bool:
    conn = get_connection()
    try:
        cursor = conn.execute(
            "DELETE FROM symptom_entries WHERE id = %s AND user_id = %s",
            (int(entry_id), int(user_id)),
        )
        conn.commit()
        return cursor.rowcount > 0
    finally:
        conn.close()


def list_entries(
    user_id: int,
    *,
    severity: str | None = None,
    has_attack: bool | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    sort_order: str = "desc",
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[SymptomEntry], int]:
    filters = ["user_id = %s"]
    params: list[object] = [int(user_id)]
    if severity is not None:
        filters.append("severity = %s")
        params.append(severity)
    if has_attack is not None:
        filters.append("attack = %s")
        params.append(bool(has_attack))
    if start is not None:
        filters.append("logged_at >= %s")
        params.append(start)
    if end is not None:
        filters.append("logged_at <= %s")
        params.append(end)
    where = " AND ".join(filters)
    order = _SORT_ORDERS.get(sort_order.strip().lower(), "DESC")

    conn = get_connection()
    try:
        total_row = conn.execute(
            f"SELECT COUNT(*) AS total FROM symptom_entries WHERE {where}",
            tuple(params),
        ).fetchone()
        rows = conn.execute(
            f"""
            SELECT {_ENTRY_COLUMNS}
            FROM symptom_entries
            WHERE {where}
            ORDER BY logged_at {order}, id {order}
            LIMIT %s OFFSET %s
            """,
            (*params, int(limit), int(offset)),
        ).fetchall()
    finally:
        conn.close()
    return [_row_to_entry(row) for row in rows], int(total_row["total"])


# history fetcher handed to the insight report builder
def list_entries_since(user_id: int, since: datetime) -> list[SymptomEntry]:
    try:
        conn = get_connection()
        try:
            rows = conn.execute(
                f"""
                SELECT {_ENTRY_COLUMNS}
                FROM symptom_entries
                WHERE user_id = %s
                  AND logged_at >= %s
                ORDER BY logged_at DESC, id DESC
                """,
                (int(user_id), since),
            ).fetchall()
        finally:
            conn.close()
    except DatabaseError as exc:
        raise FetchFailure(f"could not load symptom history for user {user_id}") from exc
    return [_row_to_entry(row) for row in rows]
