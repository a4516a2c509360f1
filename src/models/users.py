"""Pydantic models for the signed-in user and admin profile endpoints."""

from __future__ import annotations

from datetime import date
from typing import Any, ClassVar

from pydantic import Field

from src.models.base import HealthNestBase
from src.models.patients import EmergencyContact, ProfileUpdate, UserRole


class UserRead(HealthNestBase):
    id: int
    username: str
    role: UserRole


class PatientCheckRead(HealthNestBase):
    exists: bool
    patient_id: int | None = None


class AdminProfileRead(HealthNestBase):
    """Admin account plus the personal details kept in their patients row."""

    id: int
    username: str
    role: UserRole = UserRole.admin
    name: str = ""
    surname: str = ""
    address: str = ""
    gender: str = ""
    date_of_birth: date | None = None
    emergency_contact: EmergencyContact = Field(default_factory=EmergencyContact)

    @classmethod
    def from_rows(cls, user: Any, profile: Any | None) -> "AdminProfileRead":
        data: dict[str, Any] = {
            "id": user["id"],
            "username": user["username"],
            "role": user["role"],
        }
        if profile is not None:
            for key in ("name", "surname", "address", "gender", "date_of_birth"):
                data[key] = profile[key]
            data["emergency_contact"] = EmergencyContact(
                name=profile["emergency_contact_name"] or "",
                relationship=profile["emergency_contact_relationship"] or "",
                phone_number=profile["emergency_contact_phone_number"] or "",
            )
        return cls.model_validate(data)


class AdminProfileUpdate(ProfileUpdate):
    # Passwords are changed through the auth service, never here.
    non_columns: ClassVar[frozenset[str]] = frozenset({"emergency_contact", "username"})

    username: str | None = Field(default=None, min_length=3, max_length=100)
