"""Shared fixtures and fakes for the mock health-data tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Sequence

import pytest

from src.mockhealth.base import HealthMetric, MetricStoreError, SleepStages, chunked
from src.mockhealth.generator import MetricGenerator

# Canonical test patient and "now"
TEST_PATIENT_ID = 42
TEST_NOW = datetime(2026, 2, 23, 14, 30, tzinfo=timezone.utc)


class FixedClock:
    """Clock that returns a settable instant."""

    def __init__(self, now: datetime = TEST_NOW) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


class InMemoryMetricStore:
    """MetricStore fake with the same transactional semantics as Postgres.

    ``fail_on_batch`` makes ``insert_batches`` raise on that (0-based) chunk;
    nothing from the call is kept, mirroring a rolled-back transaction.
    Every awaitable yields to the event loop once so concurrent callers
    interleave the way they would against a real database.
    """

    def __init__(self) -> None:
        self.rows: list[HealthMetric] = []
        self.batch_sizes: list[int] = []
        self.insert_calls = 0
        self.fail_on_batch: int | None = None
        self.fail_inserts = False
        self._next_id = 1

    def _store(self, metric: HealthMetric) -> HealthMetric:
        metric.id = self._next_id
        self._next_id += 1
        self.rows.append(metric)
        return metric

    def for_patient(self, patient_id: int) -> list[HealthMetric]:
        return [m for m in self.rows if m.patient_id == patient_id]

    async def count_between(self, patient_id: int, start: datetime, end: datetime) -> int:
        await asyncio.sleep(0)
        return sum(1 for m in self.for_patient(patient_id) if start <= m.date < end)

    async def insert(self, metric: HealthMetric) -> HealthMetric:
        await asyncio.sleep(0)
        self.insert_calls += 1
        if self.fail_inserts:
            raise MetricStoreError("insert failed: connection reset")
        return self._store(metric)

    async def insert_batches(self, metrics: Sequence[HealthMetric], batch_size: int) -> int:
        await asyncio.sleep(0)
        staged: list[HealthMetric] = []
        for index, batch in enumerate(chunked(metrics, batch_size)):
            if self.fail_on_batch == index:
                raise MetricStoreError(f"batch insert failed: batch {index}")
            self.batch_sizes.append(len(batch))
            staged.extend(batch)
        for metric in staged:
            self._store(metric)
        return len(staged)

    async def list_between(
        self, patient_id: int, start: datetime, end: datetime | None = None
    ) -> list[HealthMetric]:
        await asyncio.sleep(0)
        rows = [
            m for m in self.for_patient(patient_id)
            if m.date >= start and (end is None or m.date < end)
        ]
        return sorted(rows, key=lambda m: m.date)

    async def latest(self, patient_id: int) -> HealthMetric | None:
        await asyncio.sleep(0)
        rows = self.for_patient(patient_id)
        return max(rows, key=lambda m: m.date) if rows else None

    async def delete_corrupted(self, patient_id: int | None = None) -> int:
        await asyncio.sleep(0)
        keep = [
            m for m in self.rows
            if m.heart_rate != 0 or (patient_id is not None and m.patient_id != patient_id)
        ]
        removed = len(self.rows) - len(keep)
        self.rows = keep
        return removed


def make_metric(
    patient_id: int = TEST_PATIENT_ID,
    when: datetime = TEST_NOW,
    heart_rate: int = 75,
) -> HealthMetric:
    return HealthMetric(
        patient_id=patient_id,
        date=when,
        weight=72.5,
        heart_rate=heart_rate,
        systolic_bp=120,
        diastolic_bp=78,
        oxygen_saturation=97.4,
        steps_count=4200,
        sleep=SleepStages(light=50.0, deep=24.0, rem=28.0, awake_time=12),
        sleep_duration=7.2,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> InMemoryMetricStore:
    return InMemoryMetricStore()


@pytest.fixture
def generator() -> MetricGenerator:
    return MetricGenerator()
