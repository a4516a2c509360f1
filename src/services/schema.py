"""Idempotent table creation, run once at startup when enabled."""

from __future__ import annotations

import logging

from src.services.database import get_connection

logger = logging.getLogger("healthnest.db.schema")

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id              SERIAL PRIMARY KEY,
        username        TEXT UNIQUE NOT NULL,
        password_hash   TEXT NOT NULL DEFAULT '',
        role            TEXT NOT NULL CHECK (role IN ('patient', 'admin')),
        is_in_household BOOLEAN NOT NULL DEFAULT FALSE,
        created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS patients (
        id                              SERIAL PRIMARY KEY,
        user_id                         INTEGER UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        name                            TEXT NOT NULL DEFAULT '',
        surname                         TEXT NOT NULL DEFAULT '',
        address                         TEXT NOT NULL DEFAULT '',
        medical_record                  TEXT NOT NULL DEFAULT '',
        date_of_birth                   DATE,
        gender                          TEXT NOT NULL DEFAULT '',
        blood_type                      TEXT NOT NULL DEFAULT '',
        height                          DOUBLE PRECISION NOT NULL DEFAULT 0,
        medical_history                 TEXT NOT NULL DEFAULT '',
        allergies                       TEXT NOT NULL DEFAULT '',
        medications                     TEXT NOT NULL DEFAULT '',
        emergency_contact_name          TEXT NOT NULL DEFAULT '',
        emergency_contact_relationship  TEXT NOT NULL DEFAULT '',
        emergency_contact_phone_number  TEXT NOT NULL DEFAULT '',
        created_at                      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at                      TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS households (
        id          SERIAL PRIMARY KEY,
        admin_id    INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS household_patients (
        household_id  INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        patient_id    INTEGER NOT NULL REFERENCES patients(id) ON DELETE CASCADE,
        PRIMARY KEY (household_id, patient_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS invitations (
        id            SERIAL PRIMARY KEY,
        admin_id      INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        patient_id    INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        household_id  INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        status        TEXT NOT NULL DEFAULT 'pending'
                      CHECK (status IN ('pending', 'accepted', 'rejected')),
        created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS health_metrics (
        id                    SERIAL PRIMARY KEY,
        patient_id            INTEGER NOT NULL REFERENCES patients(id) ON DELETE CASCADE,
        date                  TIMESTAMPTZ NOT NULL,
        weight                DOUBLE PRECISION NOT NULL,
        heart_rate            INTEGER NOT NULL,
        systolic_bp           INTEGER NOT NULL,
        diastolic_bp          INTEGER NOT NULL,
        blood_pressure        TEXT NOT NULL,
        oxygen_saturation     DOUBLE PRECISION NOT NULL,
        steps_count           INTEGER NOT NULL DEFAULT 0,
        sleep_light_pct       DOUBLE PRECISION NOT NULL DEFAULT 0,
        sleep_deep_pct        DOUBLE PRECISION NOT NULL DEFAULT 0,
        sleep_rem_pct         DOUBLE PRECISION NOT NULL DEFAULT 0,
        sleep_awake_minutes   INTEGER NOT NULL DEFAULT 0,
        sleep_duration_hours  DOUBLE PRECISION NOT NULL DEFAULT 0,
        irregular_rhythm      BOOLEAN NOT NULL DEFAULT FALSE,
        fall_detected         BOOLEAN NOT NULL DEFAULT FALSE,
        created_at            TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_health_metrics_patient_date ON health_metrics (patient_id, date)",
    """
    CREATE TABLE IF NOT EXISTS chat_sessions (
        id            SERIAL PRIMARY KEY,
        session_id    UUID UNIQUE NOT NULL,
        user_id       INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        session_type  TEXT NOT NULL DEFAULT 'general',
        context_data  TEXT NOT NULL DEFAULT '',
        is_active     BOOLEAN NOT NULL DEFAULT TRUE,
        last_used_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS chat_messages (
        id             SERIAL PRIMARY KEY,
        session_id     UUID NOT NULL REFERENCES chat_sessions(session_id) ON DELETE CASCADE,
        role           TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
        content        TEXT NOT NULL,
        tokens_used    INTEGER NOT NULL DEFAULT 0,
        response_time  INTEGER NOT NULL DEFAULT 0,
        message_index  INTEGER NOT NULL,
        timestamp      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (session_id, message_index)
    )
    """,
)


async def ensure_schema() -> None:
    """Create every table and index that does not exist yet."""
    async with get_connection() as conn:
        for statement in SCHEMA_STATEMENTS:
            await conn.execute(statement)
    logger.info("Database schema verified (%d statements)", len(SCHEMA_STATEMENTS))
