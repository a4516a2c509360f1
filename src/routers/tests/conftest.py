"""Shared fixtures for the router tests.

``FakeDatabase`` is installed in place of the asyncpg pool so the routers run
their real SQL helpers.  It understands the narrow statement shapes the
routers issue: single-table SELECT with ``=``/``<>`` conditions, INSERT and
UPDATE with ``RETURNING``, and the household membership join.
"""

from __future__ import annotations

import itertools
import re
from contextlib import asynccontextmanager, nullcontext
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.config import Settings
from src.dependencies import AuthContext, get_coordinator, get_current_user
from src.routers import households, patients, users

TEST_NOW = datetime(2026, 2, 23, 14, 30, tzinfo=timezone.utc)

ADMIN_ID = 1
PATIENT_USER_ID = 2

_PROFILE_DEFAULTS: dict[str, Any] = {
    "name": "",
    "surname": "",
    "address": "",
    "medical_record": "",
    "date_of_birth": None,
    "gender": "",
    "blood_type": "",
    "height": 0.0,
    "medical_history": "",
    "allergies": "",
    "medications": "",
    "emergency_contact_name": "",
    "emergency_contact_relationship": "",
    "emergency_contact_phone_number": "",
}

TABLE_DEFAULTS: dict[str, dict[str, Any]] = {
    "users": {"password_hash": "", "is_in_household": False},
    "patients": _PROFILE_DEFAULTS,
    "households": {},
    "household_patients": {},
    "invitations": {"status": "pending"},
}

_SELECT = re.compile(
    r"^SELECT (?P<cols>.+?) FROM (?P<table>\w+) WHERE (?P<where>.+?)"
    r"(?: ORDER BY (?P<order>\w+)(?P<desc> DESC)?)?(?: LIMIT \d+)?(?: FOR UPDATE)?$"
)
_INSERT = re.compile(
    r"^INSERT INTO (?P<table>\w+) \((?P<cols>[^)]*)\) VALUES \((?P<values>[^)]*)\)"
    r"(?: RETURNING (?P<returning>.+))?$"
)
_UPDATE = re.compile(
    r"^UPDATE (?P<table>\w+) SET (?P<sets>.+?) WHERE id = \$1(?: RETURNING (?P<returning>.+))?$"
)
_CONDITION = re.compile(r"^(\w+) (=|<>) \$(\d+)$")


def _normalize(query: str) -> str:
    return " ".join(query.split())


def _value(token: str, args: tuple[Any, ...]) -> Any:
    token = token.strip()
    if token.startswith("$"):
        return args[int(token[1:]) - 1]
    if token in ("TRUE", "FALSE"):
        return token == "TRUE"
    if token == "NOW()":
        return TEST_NOW
    raise ValueError(f"unsupported SQL value {token!r}")


def _project(row: dict[str, Any], cols: str) -> dict[str, Any]:
    if cols == "*":
        return dict(row)
    if cols == "1":
        return {"?column?": 1}
    return {c.strip(): row[c.strip()] for c in cols.split(",")}


class FakeDatabase:
    """Dict-backed tables answering the routers' SQL."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {name: [] for name in TABLE_DEFAULTS}
        self._ids = itertools.count(100)
        self.statements: list[str] = []

    # ---------- seeding ----------

    def add(self, table: str, **values: Any) -> dict[str, Any]:
        row: dict[str, Any] = dict(TABLE_DEFAULTS[table])
        if table != "household_patients":
            row.setdefault("id", values.pop("id", None) or next(self._ids))
            row.update(created_at=TEST_NOW, updated_at=TEST_NOW)
        row.update(values)
        self.tables[table].append(row)
        return row

    def add_user(self, user_id: int, role: str, username: str | None = None) -> dict[str, Any]:
        return self.add("users", id=user_id, username=username or f"user{user_id}", role=role)

    def find(self, table: str, **where: Any) -> list[dict[str, Any]]:
        return [
            r for r in self.tables[table]
            if all(r.get(k) == v for k, v in where.items())
        ]

    # ---------- statement execution ----------

    def run(self, query: str, args: tuple[Any, ...]) -> list[dict[str, Any]]:
        sql = _normalize(query)
        self.statements.append(sql)
        if " JOIN " in sql:
            return self._household_members(*args)
        if m := _SELECT.match(sql):
            return self._select(m, args)
        if m := _INSERT.match(sql):
            return self._insert(m, args)
        if m := _UPDATE.match(sql):
            return self._update(m, args)
        raise AssertionError(f"unexpected SQL: {sql}")

    def _matches(self, row: dict[str, Any], where: str, args: tuple[Any, ...]) -> bool:
        for clause in where.split(" AND "):
            cond = _CONDITION.match(clause)
            if cond is None:
                raise AssertionError(f"unsupported condition: {clause}")
            column, op, index = cond.groups()
            expected = args[int(index) - 1]
            if (row[column] == expected) != (op == "="):
                return False
        return True

    def _select(self, m: re.Match, args: tuple[Any, ...]) -> list[dict[str, Any]]:
        rows = [r for r in self.tables[m["table"]] if self._matches(r, m["where"], args)]
        if m["order"]:
            rows.sort(key=lambda r: r[m["order"]], reverse=bool(m["desc"]))
        return [_project(r, m["cols"]) for r in rows]

    def _insert(self, m: re.Match, args: tuple[Any, ...]) -> list[dict[str, Any]]:
        columns = [c.strip() for c in m["cols"].split(",")]
        values = [_value(v, args) for v in m["values"].split(",")]
        row = self.add(m["table"], **dict(zip(columns, values)))
        return [_project(row, m["returning"])] if m["returning"] else []

    def _update(self, m: re.Match, args: tuple[Any, ...]) -> list[dict[str, Any]]:
        rows = [r for r in self.tables[m["table"]] if r["id"] == args[0]]
        for row in rows:
            for assignment in m["sets"].split(", "):
                column, token = assignment.split(" = ")
                row[column.strip()] = _value(token, args)
        if not m["returning"]:
            return rows
        return [_project(r, m["returning"]) for r in rows]

    def _household_members(self, household_id: int, role: str) -> list[dict[str, Any]]:
        members = []
        for link in self.find("household_patients", household_id=household_id):
            patient = self.find("patients", id=link["patient_id"])[0]
            owner = self.find("users", id=patient["user_id"])[0]
            if owner["role"] == role:
                members.append({"id": patient["id"], "username": owner["username"]})
        return sorted(members, key=lambda r: r["id"])


class FakeConnection:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    def transaction(self) -> nullcontext:
        return nullcontext()

    async def fetch(self, query: str, *args: Any) -> list[dict[str, Any]]:
        return self.db.run(query, args)

    async def fetchrow(self, query: str, *args: Any) -> dict[str, Any] | None:
        rows = self.db.run(query, args)
        return rows[0] if rows else None

    async def fetchval(self, query: str, *args: Any) -> Any:
        row = await self.fetchrow(query, *args)
        return next(iter(row.values())) if row else None

    async def execute(self, query: str, *args: Any) -> str:
        verb = _normalize(query).split(" ", 1)[0]
        rows = self.db.run(query, args)
        return f"INSERT 0 {max(len(rows), 1)}" if verb == "INSERT" else f"{verb} {len(rows)}"


class FakePool:
    def __init__(self, db: FakeDatabase) -> None:
        self.db = db

    @asynccontextmanager
    async def acquire(self):
        yield FakeConnection(self.db)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def db(monkeypatch: pytest.MonkeyPatch) -> FakeDatabase:
    database = FakeDatabase()
    monkeypatch.setattr("src.services.database._pool", FakePool(database))
    return database


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    test_settings = Settings(
        database_url="postgresql://localhost/test",
        jwt_secret="test-secret-with-enough-length-for-hs256",
        mock_data_enabled=True,
    )
    monkeypatch.setattr("src.routers.patients.get_settings", lambda: test_settings)
    return test_settings


@pytest.fixture
def coordinator() -> MagicMock:
    """Coordinator double; ``store`` calls are AsyncMocks."""
    mock = MagicMock()
    mock.ensure_history = AsyncMock(return_value=None)
    mock.ensure_today = AsyncMock(return_value=False)
    mock.store.latest = AsyncMock(return_value=None)
    mock.store.list_between = AsyncMock(return_value=[])
    mock.store.insert = AsyncMock(side_effect=lambda metric: metric)
    mock.clock.now.return_value = TEST_NOW
    return mock


def make_client(user: AuthContext, coordinator: Any = None) -> TestClient:
    """App with the profile, household and user routers acting as ``user``."""
    app = FastAPI()
    for module in (households, patients, users):
        app.include_router(module.router)
    app.dependency_overrides[get_current_user] = lambda: user
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    return TestClient(app)


@pytest.fixture
def admin_client(coordinator: MagicMock) -> TestClient:
    return make_client(AuthContext(user_id=ADMIN_ID, role="admin"), coordinator)


@pytest.fixture
def patient_client(coordinator: MagicMock) -> TestClient:
    return make_client(AuthContext(user_id=PATIENT_USER_ID, role="patient"), coordinator)
