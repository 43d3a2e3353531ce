from __future__ import annotations

import api.db

# child tables first; TRUNCATE ... CASCADE handles the rest
_TEST_TABLES = ("auth_sessions", "environmental_samples", "symptom_entries", "users")
_SEED_USERS = ((1, "user1"), (2, "user2"))


def reset_test_database() -> None:
    api.db.assert_test_database_safety()
    api.db.initialize_database()
    conn = api.db.get_connection()
    try:
        conn.execute(f"TRUNCATE TABLE {', '.join(_TEST_TABLES)} RESTART IDENTITY CASCADE")
        for user_id, username in _SEED_USERS:
            conn.execute(
                "INSERT INTO users (id, created_at, name, username) VALUES (%s, %s, %s, %s)",
                (user_id, "2026-01-01T00:00:00Z", username, username),
            )
        conn.commit()
    finally:
        conn.close()
