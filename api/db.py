import os
from pathlib import Path
from typing import Callable
from urllib.parse import urlparse

from psycopg import Connection, connect
from psycopg.rows import dict_row

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "data" / "schema.sql"

# connect to postgres DB
def get_connection():
    database_url = os.getenv("DATABASE_URL", "").strip()
    if not database_url:
        raise RuntimeError("DATABASE_URL is required")
    conn = connect(database_url, row_factory=dict_row)
    return conn

# refuse to truncate anything that does not look like a throwaway test database
def assert_test_database_safety() -> None:
    if os.getenv("APP_ENV", "").strip().lower() != "test":
        raise RuntimeError("APP_ENV must be 'test' before touching the test database")
    db_name = urlparse(os.getenv("DATABASE_URL", "")).path.lstrip("/")
    if "test" not in db_name:
        raise RuntimeError(f"refusing to use non-test database: {db_name or '<empty>'}")

# test table presence before altering
def _table_exists(conn: Connection, table_name: str) -> bool:
    row = conn.execute(
        """
        SELECT 1
        FROM information_schema.tables
        WHERE table_schema = 'public'
          AND table_name = %s
        LIMIT 1
        """,
        (table_name,),
    ).fetchone()
    return row is not None

# prevents second startup after migration from causing duplicate column errors
def _column_exists(conn: Connection, table_name: str, column_name: str) -> bool:
    if not _table_exists(conn, table_name):
        return False
    row = conn.execute(
        """
        SELECT 1
        FROM information_schema.columns
        WHERE table_schema = 'public'
          AND table_name = %s
          AND column_name = %s
        LIMIT 1
        """,
        (table_name, column_name),
    ).fetchone()
    return row is not None

# upgrades databases created before risk_band was part of schema.sql
def _migration_001_entry_risk_band(conn: Connection) -> None:
    if not _column_exists(conn, "symptom_entries", "risk_band"):
        conn.execute("ALTER TABLE symptom_entries ADD COLUMN risk_band TEXT")

# history reads are always per user (or per location) over a time range
def _migration_002_history_indexes(conn: Connection) -> None:
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_symptom_entries_user_logged
        ON symptom_entries(user_id, logged_at DESC)
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_symptom_entries_user_attack
        ON symptom_entries(user_id, attack)
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_environmental_samples_sampled
        ON environmental_samples(sampled_at DESC)
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_environmental_samples_location
        ON environmental_samples(lat, lon, sampled_at DESC)
        """
    )


def _apply_migrations(conn: Connection) -> None:
    migrations: list[Callable[[Connection], None]] = [
        _migration_001_entry_risk_band,
        _migration_002_history_indexes,
    ]
    for migration in migrations:
        migration(conn)


def _execute_script(conn: Connection, script: str) -> None:
    with conn.cursor() as cursor:
        cursor.execute(script)


def initialize_database():
    conn = get_connection()
    try:
        if not _table_exists(conn, "symptom_entries"):
            with open(SCHEMA_PATH, "r") as f:
                schema_sql = f.read()
            _execute_script(conn, schema_sql)
        _apply_migrations(conn)
        conn.commit()
    finally:
        conn.close()
