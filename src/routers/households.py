"""Household membership and invitation endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from src.dependencies import AdminUser, CurrentUser
from src.models.patients import (
    HouseholdPatientsRead,
    InvitationCreate,
    InvitationRead,
    InvitationRespond,
    InvitationResponse,
    InvitationStatus,
    UserRole,
)
from src.services.database import fetch, fetchrow, get_connection

router = APIRouter(tags=["households"])
logger = logging.getLogger("healthnest.households")


async def _household_for(admin_id: int) -> Any:
    """Return the admin's household, creating it on first use."""
    async with get_connection() as conn:
        row = await conn.fetchrow(
            "SELECT * FROM households WHERE admin_id = $1 ORDER BY id LIMIT 1", admin_id
        )
        if row is None:
            row = await conn.fetchrow(
                "INSERT INTO households (admin_id) VALUES ($1) RETURNING *", admin_id
            )
            logger.info("Created household %d for admin %d", row["id"], admin_id)
    return row


# ---------- Household ----------

@router.get("/household/patients", response_model=HouseholdPatientsRead)
async def household_patients(user: AdminUser) -> Any:
    household = await _household_for(user.user_id)
    rows = await fetch(
        """
        SELECT p.id, u.username FROM household_patients hp
        JOIN patients p ON p.id = hp.patient_id
        JOIN users u ON u.id = p.user_id
        WHERE hp.household_id = $1 AND u.role = $2
        ORDER BY p.id
        """,
        household["id"], UserRole.patient.value,
    )
    return {"household_id": household["id"], "patients": [dict(r) for r in rows]}


# ---------- Invitations ----------

@router.post("/invitations", response_model=InvitationRead, status_code=201)
async def create_invitation(user: AdminUser, body: InvitationCreate) -> Any:
    invitee = await fetchrow("SELECT id, role FROM users WHERE id = $1", body.patient_id)
    if invitee is None:
        raise HTTPException(status_code=404, detail="Patient ID does not exist")
    if invitee["role"] == UserRole.admin.value:
        raise HTTPException(status_code=400, detail="Cannot invite an admin as a patient")

    household = await _household_for(user.user_id)
    row = await fetchrow(
        """
        INSERT INTO invitations (admin_id, patient_id, household_id, status)
        VALUES ($1, $2, $3, $4)
        RETURNING *
        """,
        user.user_id, body.patient_id, household["id"], InvitationStatus.pending.value,
    )
    logger.info("Invitation %d created by admin %d for user %d", row["id"], user.user_id, body.patient_id)
    return dict(row)


@router.get("/invitations", response_model=list[InvitationRead])
async def list_invitations(user: CurrentUser) -> Any:
    rows = await fetch(
        "SELECT * FROM invitations WHERE patient_id = $1 ORDER BY created_at DESC",
        user.user_id,
    )
    return [dict(r) for r in rows]


@router.post("/invitations/{invitation_id}/respond", response_model=InvitationRead)
async def respond_to_invitation(
    invitation_id: int, user: CurrentUser, body: InvitationRespond
) -> Any:
    async with get_connection() as conn:
        invitation = await conn.fetchrow(
            "SELECT * FROM invitations WHERE id = $1 FOR UPDATE", invitation_id
        )
        if invitation is None or invitation["patient_id"] != user.user_id:
            raise HTTPException(status_code=404, detail="Invitation not found")
        if invitation["status"] != InvitationStatus.pending.value:
            raise HTTPException(status_code=400, detail="Invitation has already been processed")

        if body.response == InvitationResponse.accept:
            patient = await conn.fetchrow(
                "SELECT id FROM patients WHERE user_id = $1", invitation["patient_id"]
            )
            if patient is None:
                raise HTTPException(status_code=404, detail="Patient not found")
            already = await conn.fetchval(
                "SELECT 1 FROM household_patients WHERE household_id = $1 AND patient_id = $2",
                invitation["household_id"], patient["id"],
            )
            if already:
                raise HTTPException(status_code=400, detail="Patient is already in the household")
            await conn.execute(
                "INSERT INTO household_patients (household_id, patient_id) VALUES ($1, $2)",
                invitation["household_id"], patient["id"],
            )
            await conn.execute(
                "UPDATE users SET is_in_household = TRUE, updated_at = NOW() WHERE id = $1",
                invitation["patient_id"],
            )
            status = InvitationStatus.accepted
        else:
            status = InvitationStatus.rejected

        row = await conn.fetchrow(
            "UPDATE invitations SET status = $2, updated_at = NOW() WHERE id = $1 RETURNING *",
            invitation_id, status.value,
        )

    logger.info("Invitation %d %s by user %d", invitation_id, status.value, user.user_id)
    return dict(row)
