"""Pydantic models for users, patients, households and invitations."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, ClassVar

from pydantic import Field

from src.models.base import HealthNestBase, TimestampMixin


# ---------- Enums ----------

class UserRole(str, Enum):
    patient = "patient"
    admin = "admin"


class InvitationStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class InvitationResponse(str, Enum):
    accept = "accept"
    reject = "reject"


# ---------- Patients ----------

class EmergencyContact(HealthNestBase):
    name: str = ""
    relationship: str = ""
    phone_number: str = ""


class PatientBase(HealthNestBase):
    name: str = Field(default="", max_length=200)
    surname: str = Field(default="", max_length=200)
    address: str = ""
    medical_record: str = ""
    date_of_birth: date | None = None
    gender: str = ""
    blood_type: str = Field(default="", max_length=5)
    height: float = Field(default=0, ge=0, le=300)
    medical_history: str = ""
    allergies: str = ""
    medications: str = ""


# Only date_of_birth may be NULL in the patients table.
NULLABLE_PATIENT_COLUMNS = frozenset({"date_of_birth"})


class ProfileUpdate(HealthNestBase):
    """Partial update of the personal fields stored in a patients row."""

    non_columns: ClassVar[frozenset[str]] = frozenset({"emergency_contact"})

    name: str | None = Field(default=None, max_length=200)
    surname: str | None = Field(default=None, max_length=200)
    address: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    emergency_contact: EmergencyContact | None = None

    def column_updates(self) -> dict[str, Any]:
        """Explicitly set fields as patients column values.

        A null sent for a NOT NULL column is dropped rather than written.
        """
        updates = {
            key: value
            for key, value in self.model_dump(exclude_unset=True, exclude=set(self.non_columns)).items()
            if value is not None or key in NULLABLE_PATIENT_COLUMNS
        }
        if self.emergency_contact is not None:
            for key, value in self.emergency_contact.model_dump(exclude_unset=True).items():
                updates[f"emergency_contact_{key}"] = value
        return updates


class PatientUpdate(ProfileUpdate):
    medical_record: str | None = None
    blood_type: str | None = Field(default=None, max_length=5)
    height: float | None = Field(default=None, ge=0, le=300)
    medical_history: str | None = None
    allergies: str | None = None
    medications: str | None = None


class PatientRead(PatientBase, TimestampMixin):
    id: int
    user_id: int
    emergency_contact: EmergencyContact = Field(default_factory=EmergencyContact)

    @classmethod
    def from_row(cls, row: Any) -> "PatientRead":
        data = dict(row)
        data["emergency_contact"] = EmergencyContact(
            name=data.pop("emergency_contact_name", "") or "",
            relationship=data.pop("emergency_contact_relationship", "") or "",
            phone_number=data.pop("emergency_contact_phone_number", "") or "",
        )
        return cls.model_validate(data)


def age_on(date_of_birth: date | None, today: date) -> int:
    """Whole years between ``date_of_birth`` and ``today`` (0 if unknown)."""
    if date_of_birth is None:
        return 0
    years = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return max(years, 0)


# ---------- Households ----------

class HouseholdPatient(HealthNestBase):
    id: int
    username: str


class HouseholdPatientsRead(HealthNestBase):
    household_id: int
    patients: list[HouseholdPatient] = Field(default_factory=list)


# ---------- Invitations ----------

class InvitationCreate(HealthNestBase):
    patient_id: int  # user id of the invited patient


class InvitationRespond(HealthNestBase):
    response: InvitationResponse


class InvitationRead(HealthNestBase):
    id: int
    admin_id: int
    patient_id: int
    household_id: int
    status: InvitationStatus
    created_at: datetime | None = None
