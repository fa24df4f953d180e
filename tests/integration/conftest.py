import os
from collections.abc import Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest

from recordvault.config.settings import Settings
from recordvault.database.connection import close_pool, get_connection, init_pool

SCHEMA_PATH = Path(__file__).resolve().parents[2] / "recordvault" / "database" / "schema.sql"


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "recordvault_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute(SCHEMA_PATH.read_text())
            conn.commit()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to run.")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def integration_cleanup() -> Generator[list[tuple[str, int]], None, None]:
    cleanup: list[tuple[str, int]] = []
    yield cleanup
    if not cleanup:
        return
    with get_connection() as conn:
        with conn.cursor() as cur:
            for table, row_id in cleanup:
                if table == "medical_records":
                    cur.execute("DELETE FROM medical_records WHERE id = %s", (row_id,))
            for table, row_id in cleanup:
                if table == "users":
                    cur.execute("DELETE FROM users WHERE id = %s", (row_id,))
        conn.commit()


def _insert_patient(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, int]],
    email: str,
    wallet_address: str | None,
) -> int:
    with db_conn.cursor() as cur:
        cur.execute(
            """
            INSERT INTO users (email, name, role, wallet_address)
            VALUES (%s, %s, 'patient', %s)
            RETURNING id
            """,
            (email, "Test Patient", wallet_address),
        )
        row = cur.fetchone()
        assert row is not None
        user_id = row[0]
    db_conn.commit()
    integration_cleanup.append(("users", user_id))
    return user_id


@pytest.fixture
def seed_patient(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, int]],
) -> tuple[int, str]:
    """Insert a consented patient with an upper-cased wallet; return (id, email)."""
    email = f"patient-{os.urandom(4).hex()}@example.com"
    user_id = _insert_patient(db_conn, integration_cleanup, email, "0X" + "AB" * 20)
    return user_id, email


@pytest.fixture
def seed_unconsented_patient(
    db_conn: psycopg.Connection[Any],
    integration_cleanup: list[tuple[str, int]],
) -> tuple[int, str]:
    email = f"no-wallet-{os.urandom(4).hex()}@example.com"
    user_id = _insert_patient(db_conn, integration_cleanup, email, None)
    return user_id, email
