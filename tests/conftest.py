from __future__ import annotations

import os
from urllib.parse import urlparse, urlunparse
from uuid import uuid4

import pytest
from psycopg import connect, sql

import api.db
from tests.db_test_utils import reset_test_database

# modules importing reset_test_database talk to postgres; everything else is pure
_DB_HELPER = "reset_test_database"


def _needs_database(module: object) -> bool:
    return _DB_HELPER in getattr(module, "__dict__", {})


def _database_url_for(admin_url: str, db_name: str) -> str:
    parsed = urlparse(admin_url)
    if parsed.scheme not in {"postgres", "postgresql"}:
        raise RuntimeError("TEST_DATABASE_ADMIN_URL must be a postgres/postgresql URL")
    return urlunparse(parsed._replace(path=f"/{db_name}"))


def _run_admin(admin_url: str, statement, params: tuple | None = None) -> None:
    conn = connect(admin_url, autocommit=True)
    try:
        conn.execute(statement, params)
    finally:
        conn.close()


def _drop_database(admin_url: str, db_name: str) -> None:
    _run_admin(
        admin_url,
        """
        SELECT pg_terminate_backend(pid)
        FROM pg_stat_activity
        WHERE datname = %s
          AND pid <> pg_backend_pid()
        """,
        (db_name,),
    )
    _run_admin(admin_url, sql.SQL("DROP DATABASE IF EXISTS {}").format(sql.Identifier(db_name)))


def pytest_configure(config) -> None:
    config.addinivalue_line("markers", "needs_db: test requires isolated PostgreSQL test database")


def pytest_collection_modifyitems(session, config, items) -> None:
    _ = session, config
    for item in items:
        module = getattr(item, "module", None)
        if module is not None and _needs_database(module):
            item.add_marker("needs_db")


@pytest.fixture(scope="session")
def insights_test_database():
    admin_url = os.getenv("TEST_DATABASE_ADMIN_URL", "").strip()
    if not admin_url:
        pytest.skip("TEST_DATABASE_ADMIN_URL is not set")

    db_name = f"insights_test_{uuid4().hex[:12]}"
    _run_admin(admin_url, sql.SQL("CREATE DATABASE {}").format(sql.Identifier(db_name)))

    saved_env = {key: os.environ.get(key) for key in ("APP_ENV", "DATABASE_URL")}
    os.environ["APP_ENV"] = "test"
    os.environ["DATABASE_URL"] = _database_url_for(admin_url, db_name)
    try:
        api.db.assert_test_database_safety()
        api.db.initialize_database()
        yield os.environ["DATABASE_URL"]
    finally:
        _drop_database(admin_url, db_name)
        for key, value in saved_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


@pytest.fixture(autouse=True)
def _fresh_tables(request) -> None:
    if not _needs_database(request.node.module):
        return
    request.getfixturevalue("insights_test_database")
    reset_test_database()
