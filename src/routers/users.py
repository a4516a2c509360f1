"""Signed-in user lookup and the admin's own profile."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from src.dependencies import AdminUser, CurrentUser
from src.models.users import AdminProfileRead, AdminProfileUpdate, PatientCheckRead, UserRead
from src.services.database import fetchrow, fetchval, get_connection
from src.services.profiles import insert_profile, update_profile

router = APIRouter(tags=["users"])
logger = logging.getLogger("healthnest.users")


@router.get("/user", response_model=UserRead)
async def current_user(user: CurrentUser) -> Any:
    row = await fetchrow("SELECT id, username, role FROM users WHERE id = $1", user.user_id)
    if row is None:
        raise HTTPException(status_code=404, detail="User not found")
    return dict(row)


@router.get("/users/{user_id}/patient", response_model=PatientCheckRead)
async def check_patient_details(user_id: int, user: CurrentUser) -> Any:
    """Whether ``user_id`` already has a patient record, and its id."""
    patient_id = await fetchval("SELECT id FROM patients WHERE user_id = $1", user_id)
    return PatientCheckRead(exists=patient_id is not None, patient_id=patient_id)


# ---------- Admin profile ----------

@router.get("/admin/profile", response_model=AdminProfileRead)
async def get_admin_profile(user: AdminUser) -> Any:
    account = await fetchrow("SELECT id, username, role FROM users WHERE id = $1", user.user_id)
    if account is None:
        raise HTTPException(status_code=404, detail="User not found")
    profile = await fetchrow("SELECT * FROM patients WHERE user_id = $1", user.user_id)
    return AdminProfileRead.from_rows(account, profile)


@router.patch("/admin/profile", response_model=AdminProfileRead)
async def update_admin_profile(user: AdminUser, body: AdminProfileUpdate) -> Any:
    updates = body.column_updates()

    async with get_connection() as conn:
        account = await conn.fetchrow(
            "SELECT id, username, role FROM users WHERE id = $1 FOR UPDATE", user.user_id
        )
        if account is None:
            raise HTTPException(status_code=404, detail="User not found")

        if body.username and body.username != account["username"]:
            taken = await conn.fetchval(
                "SELECT 1 FROM users WHERE username = $1 AND id <> $2",
                body.username, user.user_id,
            )
            if taken:
                raise HTTPException(status_code=400, detail="Username already exists")
            account = await conn.fetchrow(
                """
                UPDATE users SET username = $2, updated_at = NOW()
                WHERE id = $1
                RETURNING id, username, role
                """,
                user.user_id, body.username,
            )

        # Admin personal details live in a patients row keyed by their user id.
        profile = await conn.fetchrow("SELECT * FROM patients WHERE user_id = $1", user.user_id)
        if updates:
            if profile is None:
                profile = await insert_profile(conn, user.user_id)
            profile = await update_profile(conn, profile["id"], updates)

    logger.info("Admin %d updated their profile", user.user_id)
    return AdminProfileRead.from_rows(account, profile)
