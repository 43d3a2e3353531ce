# sessions are issued elsewhere; this side only resolves a bearer token to its user

from __future__ import annotations

from datetime import datetime, timezone

from api.db import get_connection


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def resolve_user_from_token(token: str | None) -> dict | None:
    if not token:
        return None
    conn = get_connection()
    try:
        row = conn.execute(
            """
            SELECT u.id AS id, u.username AS username, u.name AS name
            FROM auth_sessions s
            JOIN users u ON u.id = s.user_id
            WHERE s.token = %s
              AND s.revoked_at IS NULL
              AND s.expires_at > %s
            LIMIT 1
            """,
            (token, _now_iso()),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()
