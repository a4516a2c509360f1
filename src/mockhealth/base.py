"""Canonical data models and collaborator interfaces for mock health data.

``HealthMetric`` is the single record type shared by the generator, the
metric store, the AI context builder and the API layer.  The store and the
clock are protocols so the background machinery can run against PostgreSQL
in production and against in-memory fakes in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Protocol, Sequence


class MetricStoreError(Exception):
    """Raised when a metric store read or write fails."""


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass
class SleepStages:
    """Sleep stage breakdown for one night.

    Percentages are drawn independently and are not normalised to 100.

    Attributes:
        light:      Light sleep share, percent.
        deep:       Deep sleep share, percent.
        rem:        REM sleep share, percent.
        awake_time: Minutes awake during the night.
    """

    light: float
    deep: float
    rem: float
    awake_time: int


@dataclass
class HealthMetric:
    """One daily health-metrics record for a patient.

    Attributes:
        patient_id:        Patient the record belongs to.
        date:              UTC timestamp the record is stamped with.
        weight:            Body weight, kg.
        heart_rate:        Heart rate, bpm.  Zero marks a corrupted row.
        systolic_bp:       Systolic blood pressure, mmHg.
        diastolic_bp:      Diastolic blood pressure, mmHg.
        oxygen_saturation: SpO2, percent.
        steps_count:       Step count.
        sleep:             Sleep stage breakdown.
        sleep_duration:    Hours slept.
        irregular_rhythm:  Irregular heart rhythm flagged.
        fall_detected:     Fall event flagged.
        id:                Database id once persisted.
    """

    patient_id: int
    date: datetime
    weight: float
    heart_rate: int
    systolic_bp: int
    diastolic_bp: int
    oxygen_saturation: float
    steps_count: int = 0
    sleep: SleepStages | None = None
    sleep_duration: float = 0.0
    irregular_rhythm: bool = False
    fall_detected: bool = False
    id: int | None = None
    created_at: datetime | None = field(default=None, compare=False)

    @property
    def blood_pressure(self) -> str:
        """Display string, e.g. ``"120/80"``."""
        return f"{self.systolic_bp}/{self.diastolic_bp}"

    def to_row(self) -> tuple[Any, ...]:
        """Column values in ``METRIC_COLUMNS`` order."""
        sleep = self.sleep or SleepStages(0.0, 0.0, 0.0, 0)
        return (
            self.patient_id,
            self.date,
            self.weight,
            self.heart_rate,
            self.systolic_bp,
            self.diastolic_bp,
            self.blood_pressure,
            self.oxygen_saturation,
            self.steps_count,
            sleep.light,
            sleep.deep,
            sleep.rem,
            sleep.awake_time,
            self.sleep_duration,
            self.irregular_rhythm,
            self.fall_detected,
        )

    @classmethod
    def from_row(cls, row: Any) -> "HealthMetric":
        """Build a record from a ``health_metrics`` row mapping."""
        return cls(
            id=row["id"],
            patient_id=row["patient_id"],
            date=row["date"],
            weight=row["weight"],
            heart_rate=row["heart_rate"],
            systolic_bp=row["systolic_bp"],
            diastolic_bp=row["diastolic_bp"],
            oxygen_saturation=row["oxygen_saturation"],
            steps_count=row["steps_count"],
            sleep=SleepStages(
                light=row["sleep_light_pct"],
                deep=row["sleep_deep_pct"],
                rem=row["sleep_rem_pct"],
                awake_time=row["sleep_awake_minutes"],
            ),
            sleep_duration=row["sleep_duration_hours"],
            irregular_rhythm=row["irregular_rhythm"],
            fall_detected=row["fall_detected"],
            created_at=row.get("created_at"),
        )


METRIC_COLUMNS: tuple[str, ...] = (
    "patient_id",
    "date",
    "weight",
    "heart_rate",
    "systolic_bp",
    "diastolic_bp",
    "blood_pressure",
    "oxygen_saturation",
    "steps_count",
    "sleep_light_pct",
    "sleep_deep_pct",
    "sleep_rem_pct",
    "sleep_awake_minutes",
    "sleep_duration_hours",
    "irregular_rhythm",
    "fall_detected",
)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def start_of_day(moment: datetime) -> datetime:
    """Truncate a timestamp to midnight, keeping its tzinfo."""
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def day_window(moment: datetime) -> tuple[datetime, datetime]:
    """Return ``[start_of_day, start_of_next_day)`` around ``moment``."""
    start = start_of_day(moment)
    return start, start + timedelta(days=1)


class MetricStore(Protocol):
    """Persistence operations the mock-data machinery relies on.

    Implementations raise ``MetricStoreError`` on failure.
    """

    async def count_between(
        self, patient_id: int, start: datetime, end: datetime
    ) -> int: ...

    async def insert(self, metric: HealthMetric) -> HealthMetric: ...

    async def insert_batches(
        self, metrics: Sequence[HealthMetric], batch_size: int
    ) -> int: ...

    async def list_between(
        self, patient_id: int, start: datetime, end: datetime | None = None
    ) -> list[HealthMetric]: ...

    async def latest(self, patient_id: int) -> HealthMetric | None: ...

    async def delete_corrupted(self, patient_id: int | None = None) -> int: ...


def chunked(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size < 1:
        raise ValueError("batch size must be >= 1")
    for i in range(0, len(items), size):
        yield items[i : i + size]
