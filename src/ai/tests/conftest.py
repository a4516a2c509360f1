"""Shared fixtures for the AI assistant tests."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager, nullcontext
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.ai.chat import ChatMessage, ChatSession
from src.ai.context import AdminContext, PatientContext, PatientSummary, UserContext
from src.mockhealth.base import HealthMetric, SleepStages

TEST_NOW = datetime(2026, 2, 23, 14, 30, tzinfo=timezone.utc)


def make_metrics(steps: int = 5230) -> HealthMetric:
    return HealthMetric(
        patient_id=7,
        date=TEST_NOW,
        weight=68.3,
        heart_rate=72,
        systolic_bp=128,
        diastolic_bp=82,
        oxygen_saturation=96.44,
        steps_count=steps,
        sleep=SleepStages(light=52.0, deep=21.0, rem=27.0, awake_time=9),
        sleep_duration=7.5,
    )


def make_response(status_code: int = 200, payload: object = None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    response.json = MagicMock(return_value=payload if payload is not None else {})
    return response


class InMemoryChatStore:
    """Dict-backed chat store mirroring ``PostgresChatStore``."""

    def __init__(self) -> None:
        self.sessions: list[ChatSession] = []
        self.messages: list[ChatMessage] = []
        self.touched: list[uuid.UUID] = []

    async def active_session(self, user_id: int) -> ChatSession | None:
        for session in reversed(self.sessions):
            if session.user_id == user_id and session.is_active:
                return session
        return None

    async def create_session(self, session: ChatSession) -> ChatSession:
        session.last_used_at = TEST_NOW
        self.sessions.append(session)
        return session

    async def add_message(self, message: ChatMessage) -> ChatMessage:
        message.message_index = 1 + sum(
            1 for m in self.messages if m.session_id == message.session_id
        )
        message.id = len(self.messages) + 1
        message.timestamp = TEST_NOW
        self.messages.append(message)
        return message

    async def touch_session(self, session_id: uuid.UUID) -> None:
        self.touched.append(session_id)

    async def list_messages(
        self, session_id: uuid.UUID, limit: int | None = None
    ) -> list[ChatMessage]:
        found = sorted(
            (m for m in self.messages if m.session_id == session_id),
            key=lambda m: m.message_index,
        )
        return found[:limit] if limit and limit > 0 else found

    async def clear(self, user_id: int) -> int:
        ids = {s.session_id for s in self.sessions if s.user_id == user_id}
        self.messages = [m for m in self.messages if m.session_id not in ids]
        self.sessions = [s for s in self.sessions if s.user_id != user_id]
        return len(ids)


@pytest.fixture
def patient_context() -> UserContext:
    return UserContext(
        user_id=3,
        user_role="patient",
        user_name="margaret",
        patient_data=PatientContext(
            name="Margaret Hale",
            age=81,
            gender="female",
            blood_type="A+",
            height=162.0,
            medications="Lisinopril 10mg",
            allergies="",
            medical_history="Hypertension",
            emergency_contact={"name": "John Hale", "relationship": "son", "phone_number": "555-0101"},
            latest_metrics=make_metrics(),
        ),
    )


@pytest.fixture
def admin_context() -> UserContext:
    return UserContext(
        user_id=1,
        user_role="admin",
        user_name="carer",
        admin_data=AdminContext(
            household_count=1,
            patients=[
                PatientSummary(
                    name="Margaret Hale", age=81, gender="female", blood_type="A+",
                    height=162.0, allergies="Penicillin", latest_metrics=make_metrics(steps=0),
                ),
                PatientSummary(
                    name="Walter Hale", age=84, gender="male", blood_type="O-", height=175.5,
                ),
            ],
        ),
    )


@pytest.fixture
def mock_http_client() -> MagicMock:
    """Mock httpx.AsyncClient answering every request with an empty 200."""
    client = MagicMock()
    client.request = AsyncMock(return_value=make_response())
    return client


@pytest.fixture
def chat_store() -> InMemoryChatStore:
    return InMemoryChatStore()


class FakePool:
    """Stand-in for the asyncpg pool handing out a single mocked connection."""

    def __init__(self, conn: MagicMock) -> None:
        self.conn = conn

    @asynccontextmanager
    async def acquire(self):
        yield self.conn


@pytest.fixture
def db_conn(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """A mocked connection installed behind ``src.services.database``."""
    conn = MagicMock()
    conn.transaction.return_value = nullcontext()
    conn.execute = AsyncMock(return_value="SELECT 1")
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetchval = AsyncMock(return_value=None)
    monkeypatch.setattr("src.services.database._pool", FakePool(conn))
    return conn
