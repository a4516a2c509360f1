"""Pydantic models for health-metric records."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, model_validator

from src.models.base import HealthNestBase

# Accepted blood pressure range for manually entered readings (mmHg)
SYSTOLIC_RANGE = (70, 190)
DIASTOLIC_RANGE = (40, 130)


class SleepStagesRead(HealthNestBase):
    light: float
    deep: float
    rem: float
    awake_time: int


class HealthMetricRead(HealthNestBase):
    id: int | None = None
    patient_id: int
    date: datetime
    weight: float
    heart_rate: int
    systolic_bp: int
    diastolic_bp: int
    blood_pressure: str
    oxygen_saturation: float
    steps_count: int
    sleep: SleepStagesRead | None = None
    sleep_duration: float
    irregular_rhythm: bool
    fall_detected: bool


class HealthMetricCreate(HealthNestBase):
    """A reading entered by a caregiver."""

    date: datetime | None = None  # defaults to now
    weight: float = Field(gt=0, le=400)
    heart_rate: int = Field(ge=20, le=250)
    systolic_bp: int
    diastolic_bp: int
    oxygen_saturation: float = Field(default=98.0, ge=50, le=100)
    steps_count: int = Field(default=0, ge=0, le=100000)

    @model_validator(mode="after")
    def _check_blood_pressure(self) -> "HealthMetricCreate":
        lo_s, hi_s = SYSTOLIC_RANGE
        lo_d, hi_d = DIASTOLIC_RANGE
        if not (lo_s <= self.systolic_bp <= hi_s and lo_d <= self.diastolic_bp <= hi_d):
            raise ValueError("Invalid blood pressure values")
        return self
