"""Per-user health context and prompt construction for the AI assistant.

A patient user gets their own profile and latest vitals; an admin gets a
summary of every patient across the households they manage.  The context is
rendered into a plain-text prompt for the language model and serialized to
JSON when a chat session is opened.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import date

from src.mockhealth.base import HealthMetric, MetricStore
from src.models.patients import EmergencyContact, age_on
from src.services.database import fetch, fetchrow

logger = logging.getLogger("healthnest.ai.context")

SYSTEM_PREAMBLE = (
    "You are a helpful AI assistant for an elderly health monitoring system. "
    "You provide informational health responses and always recommend consulting "
    "healthcare providers for medical advice. "
    "Keep responses clear, simple, and appropriate for elderly users. "
    "Never provide medical diagnosis or treatment recommendations.\n\n"
)

PATIENT_GUIDANCE = (
    "\nPlease answer questions about YOUR health data only. Do not provide medical "
    "diagnosis or treatment advice. "
    "Suggest consulting with healthcare providers for medical concerns.\n\n"
)

ADMIN_GUIDANCE = (
    "\nYou have access to detailed information about each patient including their "
    "current vital signs, medications, and health metrics. "
    "You can answer specific questions about any of these patients' health data. "
    "When referring to patient data, use the specific names and current "
    "information provided above.\n\n"
)


class UserNotFoundError(LookupError):
    """The user a context was requested for does not exist."""


# ---------------------------------------------------------------------------
# Context types
# ---------------------------------------------------------------------------


@dataclass
class PatientContext:
    name: str
    age: int
    gender: str
    blood_type: str
    height: float
    medications: str = ""
    allergies: str = ""
    medical_history: str = ""
    emergency_contact: dict = field(default_factory=dict)
    latest_metrics: HealthMetric | None = None


@dataclass
class PatientSummary:
    name: str
    age: int
    gender: str
    blood_type: str
    height: float
    medications: str = ""
    allergies: str = ""
    latest_metrics: HealthMetric | None = None


@dataclass
class AdminContext:
    household_count: int
    patients: list[PatientSummary] = field(default_factory=list)

    @property
    def patient_count(self) -> int:
        return len(self.patients)

    @property
    def household_info(self) -> str:
        return (
            f"Managing {self.household_count} household(s) "
            f"with {self.patient_count} patient(s)"
        )


@dataclass
class UserContext:
    user_id: int
    user_role: str
    user_name: str
    patient_data: PatientContext | None = None
    admin_data: AdminContext | None = None

    @property
    def is_patient(self) -> bool:
        return self.user_role == "patient"


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _full_name(row) -> str:
    return f"{row['name'] or ''} {row['surname'] or ''}".strip()


async def build_user_context(
    user_id: int, store: MetricStore, today: date | None = None
) -> UserContext:
    """Load the health context for ``user_id``.

    Args:
        user_id: Id of the authenticated user.
        store:   Metric store used to look up each patient's latest record.
        today:   Reference date for ages (defaults to the current date).

    Raises:
        UserNotFoundError: if the user row does not exist.
    """
    today = today or date.today()
    user = await fetchrow("SELECT id, username, role FROM users WHERE id = $1", user_id)
    if user is None:
        raise UserNotFoundError(f"user {user_id} not found")

    context = UserContext(
        user_id=user["id"], user_role=user["role"], user_name=user["username"]
    )
    if context.is_patient:
        patient = await fetchrow("SELECT * FROM patients WHERE user_id = $1", user_id)
        if patient is not None:
            contact = EmergencyContact(
                name=patient["emergency_contact_name"] or "",
                relationship=patient["emergency_contact_relationship"] or "",
                phone_number=patient["emergency_contact_phone_number"] or "",
            )
            context.patient_data = PatientContext(
                name=_full_name(patient),
                age=age_on(patient["date_of_birth"], today),
                gender=patient["gender"] or "",
                blood_type=patient["blood_type"] or "",
                height=patient["height"] or 0.0,
                medications=patient["medications"] or "",
                allergies=patient["allergies"] or "",
                medical_history=patient["medical_history"] or "",
                emergency_contact=contact.model_dump(),
                latest_metrics=await store.latest(patient["id"]),
            )
        return context

    households = await fetch("SELECT id FROM households WHERE admin_id = $1", user_id)
    rows = await fetch(
        """
        SELECT p.* FROM patients p
        JOIN household_patients hp ON hp.patient_id = p.id
        JOIN households h ON h.id = hp.household_id
        WHERE h.admin_id = $1
        ORDER BY h.id, p.id
        """,
        user_id,
    )
    summaries = [
        PatientSummary(
            name=_full_name(row),
            age=age_on(row["date_of_birth"], today),
            gender=row["gender"] or "",
            blood_type=row["blood_type"] or "",
            height=row["height"] or 0.0,
            medications=row["medications"] or "",
            allergies=row["allergies"] or "",
            latest_metrics=await store.latest(row["id"]),
        )
        for row in rows
    ]
    context.admin_data = AdminContext(household_count=len(households), patients=summaries)
    logger.debug("Loaded admin context for user %d: %s", user_id, context.admin_data.household_info)
    return context


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


def _vitals_lines(metrics: HealthMetric, indent: str) -> list[str]:
    lines = [
        f"{indent}• Blood Pressure: {metrics.systolic_bp}/{metrics.diastolic_bp} mmHg",
        f"{indent}• Heart Rate: {metrics.heart_rate} bpm",
        f"{indent}• Weight: {metrics.weight:.1f} kg",
        f"{indent}• Oxygen Saturation: {metrics.oxygen_saturation:.1f}%",
    ]
    if metrics.steps_count > 0:
        lines.append(f"{indent}• Daily Steps: {metrics.steps_count}")
    return lines


def build_healthcare_prompt(context: UserContext, user_message: str) -> str:
    """Render the full model prompt for one user question."""
    parts = [SYSTEM_PREAMBLE]

    if context.is_patient and context.patient_data is not None:
        p = context.patient_data
        lines = [
            f"Current User: {p.name} (Patient)",
            "Your Health Information:",
            f"- Age: {p.age} years old",
            f"- Gender: {p.gender}",
            f"- Blood Type: {p.blood_type}",
            f"- Height: {p.height:.1f} cm",
        ]
        if p.medications:
            lines.append(f"- Current Medications: {p.medications}")
        if p.allergies:
            lines.append(f"- Known Allergies: {p.allergies}")
        if p.latest_metrics is not None:
            lines.append("- Latest Vital Signs:")
            lines.extend(_vitals_lines(p.latest_metrics, "  "))
        parts.append("\n".join(lines) + "\n")
        parts.append(PATIENT_GUIDANCE)
    elif context.admin_data is not None:
        a = context.admin_data
        lines = [
            f"Current User: {context.user_name} (Admin/Caregiver)",
            "You are assisting a caregiver/admin who manages multiple patients.",
            f"Household Information: {a.household_info}",
        ]
        if a.patients:
            lines.append("Patients under your care:")
            for s in a.patients:
                lines.append(f"\n• {s.name} (Age: {s.age}, Gender: {s.gender})")
                lines.append(f"  - Blood Type: {s.blood_type}, Height: {s.height:.1f} cm")
                if s.medications:
                    lines.append(f"  - Medications: {s.medications}")
                if s.allergies:
                    lines.append(f"  - Allergies: {s.allergies}")
                if s.latest_metrics is not None:
                    lines.append("  - Latest Vital Signs:")
                    lines.extend(_vitals_lines(s.latest_metrics, "    "))
        parts.append("\n".join(lines) + "\n")
        parts.append(ADMIN_GUIDANCE)

    parts.append(f"User Question: {user_message}\n")
    parts.append("AI Response:")
    return "".join(parts)


def serialize_context(context: UserContext) -> str:
    """JSON snapshot stored on the chat session."""
    data = asdict(context)
    data["is_patient"] = context.is_patient
    if context.admin_data is not None:
        data["admin_data"]["patient_count"] = context.admin_data.patient_count
        data["admin_data"]["household_info"] = context.admin_data.household_info
    return json.dumps(data, default=str)
