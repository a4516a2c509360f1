"""Patient profile and health-metric endpoints."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from fastapi import APIRouter, HTTPException

from src.config import get_settings
from src.dependencies import Coordinator, CurrentUser
from src.mockhealth.backfill import BackfillError
from src.mockhealth.base import HealthMetric, MetricStoreError
from src.models.health_metrics import HealthMetricCreate, HealthMetricRead
from src.models.patients import PatientRead, PatientUpdate, UserRole
from src.services.database import fetchrow, get_connection
from src.services.profiles import insert_profile, update_profile

router = APIRouter(prefix="/patients", tags=["patients"])
logger = logging.getLogger("healthnest.patients")

METRICS_WINDOW_DAYS = 30


async def _resolve_patient(patient_or_user_id: int) -> Any:
    """Look a patient up by patient id, falling back to the owning user id."""
    row = await fetchrow("SELECT * FROM patients WHERE id = $1", patient_or_user_id)
    if row is None:
        row = await fetchrow("SELECT * FROM patients WHERE user_id = $1", patient_or_user_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return row


async def _ensure_history(coordinator, patient_id: int) -> None:
    if not get_settings().mock_data_enabled:
        return
    try:
        await coordinator.ensure_history(patient_id)
    except BackfillError as exc:
        logger.error("Failed to ensure health metrics for patient %d: %s", patient_id, exc)
        raise HTTPException(status_code=500, detail="Failed to ensure health metrics") from exc


# ---------- Profile ----------

@router.get("/{patient_id}", response_model=PatientRead)
async def get_patient(patient_id: int, user: CurrentUser, coordinator: Coordinator) -> Any:
    row = await _resolve_patient(patient_id)
    await _ensure_history(coordinator, row["id"])
    return PatientRead.from_row(row)


async def _profile_for_update(conn: Any, patient_or_user_id: int) -> Any:
    """Find the patient row to update, creating it for a patient user without one."""
    row = await conn.fetchrow("SELECT * FROM patients WHERE id = $1", patient_or_user_id)
    if row is None:
        row = await conn.fetchrow(
            "SELECT * FROM patients WHERE user_id = $1", patient_or_user_id
        )
    if row is not None:
        return row

    owner = await conn.fetchrow("SELECT id, role FROM users WHERE id = $1", patient_or_user_id)
    if owner is None:
        raise HTTPException(status_code=404, detail="User not found")
    if owner["role"] != UserRole.patient.value:
        raise HTTPException(status_code=400, detail="User is not a patient")
    row = await insert_profile(conn, owner["id"])
    logger.info("Created patient record %d for user %d", row["id"], owner["id"])
    return row


@router.patch("/{patient_id}", response_model=PatientRead)
async def update_patient(patient_id: int, user: CurrentUser, body: PatientUpdate) -> Any:
    updates = body.column_updates()
    if not updates:
        raise HTTPException(status_code=400, detail="No fields to update")

    async with get_connection() as conn:
        existing = await _profile_for_update(conn, patient_id)
        row = await update_profile(conn, existing["id"], updates)
    if not row:
        raise HTTPException(status_code=404, detail="Patient not found")
    logger.info("Patient %d updated by user %d", row["id"], user.user_id)
    return PatientRead.from_row(row)

# ---------- Health metrics ----------

@router.get("/{patient_id}/metrics", response_model=list[HealthMetricRead])
async def list_metrics(patient_id: int, user: CurrentUser, coordinator: Coordinator) -> Any:
    row = await _resolve_patient(patient_id)
    await _ensure_history(coordinator, row["id"])

    since = coordinator.clock.now() - timedelta(days=METRICS_WINDOW_DAYS)
    try:
        metrics = await coordinator.store.list_between(row["id"], since)
    except MetricStoreError as exc:
        raise HTTPException(status_code=500, detail="Failed to retrieve health metrics") from exc
    return [HealthMetricRead.model_validate(m) for m in metrics]


@router.get("/{patient_id}/metrics/latest", response_model=HealthMetricRead)
async def latest_metric(patient_id: int, user: CurrentUser, coordinator: Coordinator) -> Any:
    row = await _resolve_patient(patient_id)
    try:
        if get_settings().mock_data_enabled:
            await coordinator.ensure_today(row["id"])
        metric = await coordinator.store.latest(row["id"])
    except MetricStoreError as exc:
        logger.error("Failed to load latest metrics for patient %d: %s", row["id"], exc)
        raise HTTPException(status_code=500, detail="Failed to retrieve health metrics") from exc
    if metric is None:
        raise HTTPException(status_code=404, detail="No health metrics recorded")
    return HealthMetricRead.model_validate(metric)


@router.post("/{patient_id}/metrics", response_model=HealthMetricRead, status_code=201)
async def record_metric(
    patient_id: int, user: CurrentUser, body: HealthMetricCreate, coordinator: Coordinator
) -> Any:
    row = await _resolve_patient(patient_id)
    metric = HealthMetric(
        patient_id=row["id"],
        date=body.date or coordinator.clock.now(),
        weight=body.weight,
        heart_rate=body.heart_rate,
        systolic_bp=body.systolic_bp,
        diastolic_bp=body.diastolic_bp,
        oxygen_saturation=body.oxygen_saturation,
        steps_count=body.steps_count,
    )
    try:
        saved = await coordinator.store.insert(metric)
    except MetricStoreError as exc:
        raise HTTPException(status_code=500, detail="Failed to save health metrics") from exc
    return HealthMetricRead.model_validate(saved)
