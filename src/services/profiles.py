"""Writes to the ``patients`` table shared by patient and admin profiles."""

from __future__ import annotations

from typing import Any

import asyncpg


async def insert_profile(conn: asyncpg.Connection, user_id: int) -> asyncpg.Record:
    """Create an empty profile row for ``user_id`` (column defaults apply)."""
    return await conn.fetchrow(
        "INSERT INTO patients (user_id) VALUES ($1) RETURNING *", user_id
    )


async def update_profile(
    conn: asyncpg.Connection, patient_id: int, updates: dict[str, Any]
) -> asyncpg.Record | None:
    """Apply column ``updates`` to one patients row and return the new row.

    Keys must be column names produced by ``ProfileUpdate.column_updates``;
    values are always bound as parameters.
    """
    set_clauses = []
    params: list[Any] = [patient_id]
    for i, (key, value) in enumerate(updates.items(), start=2):
        set_clauses.append(f"{key} = ${i}")
        params.append(value)
    set_clauses.append("updated_at = NOW()")

    return await conn.fetchrow(
        f"UPDATE patients SET {', '.join(set_clauses)} WHERE id = $1 RETURNING *",
        *params,
    )
