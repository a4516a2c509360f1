"""Tests for the signed-in user and admin profile endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from src.routers.tests.conftest import ADMIN_ID, PATIENT_USER_ID, FakeDatabase


@pytest.fixture
def accounts(db: FakeDatabase) -> FakeDatabase:
    db.add_user(ADMIN_ID, "admin", username="carer")
    db.add_user(PATIENT_USER_ID, "patient", username="grandma")
    db.add("patients", id=50, user_id=PATIENT_USER_ID)
    return db


class TestCurrentUser:
    def test_returns_id_and_role(self, accounts: FakeDatabase, patient_client: TestClient) -> None:
        response = patient_client.get("/user")
        assert response.status_code == 200
        assert response.json() == {"id": PATIENT_USER_ID, "username": "grandma", "role": "patient"}

    def test_deleted_user(self, db: FakeDatabase, admin_client: TestClient) -> None:
        assert admin_client.get("/user").status_code == 404


class TestCheckPatientDetails:
    def test_existing_record(self, accounts: FakeDatabase, admin_client: TestClient) -> None:
        response = admin_client.get(f"/users/{PATIENT_USER_ID}/patient")
        assert response.json() == {"exists": True, "patient_id": 50}

    def test_missing_record(self, accounts: FakeDatabase, admin_client: TestClient) -> None:
        response = admin_client.get("/users/77/patient")
        assert response.status_code == 200
        assert response.json() == {"exists": False, "patient_id": None}


class TestAdminProfile:
    def test_profile_without_personal_details(
        self, accounts: FakeDatabase, admin_client: TestClient
    ) -> None:
        body = admin_client.get("/admin/profile").json()

        assert body["id"] == ADMIN_ID
        assert body["username"] == "carer"
        assert body["role"] == "admin"
        assert body["name"] == ""
        assert body["date_of_birth"] is None

    def test_patients_are_forbidden(
        self, accounts: FakeDatabase, patient_client: TestClient
    ) -> None:
        assert patient_client.get("/admin/profile").status_code == 403
        assert patient_client.patch("/admin/profile", json={"name": "x"}).status_code == 403

    def test_first_update_creates_personal_record(
        self, accounts: FakeDatabase, admin_client: TestClient
    ) -> None:
        response = admin_client.patch(
            "/admin/profile",
            json={
                "name": "Margaret",
                "date_of_birth": "1975-03-14",
                "emergency_contact": {"name": "Tom", "phone_number": "555-0199"},
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "Margaret"
        assert body["date_of_birth"] == "1975-03-14"
        assert body["emergency_contact"]["phone_number"] == "555-0199"
        rows = accounts.find("patients", user_id=ADMIN_ID)
        assert len(rows) == 1
        assert rows[0]["emergency_contact_name"] == "Tom"

        # a second update reuses the same record
        admin_client.patch("/admin/profile", json={"surname": "Hale", "address": None})
        assert len(accounts.find("patients", user_id=ADMIN_ID)) == 1
        assert rows[0]["surname"] == "Hale"
        assert rows[0]["address"] == ""

    def test_rename(self, accounts: FakeDatabase, admin_client: TestClient) -> None:
        response = admin_client.patch("/admin/profile", json={"username": "margaret"})

        assert response.status_code == 200
        assert response.json()["username"] == "margaret"
        assert accounts.find("users", id=ADMIN_ID)[0]["username"] == "margaret"
        # nothing personal was sent, so no record is created
        assert accounts.find("patients", user_id=ADMIN_ID) == []

    def test_rename_to_taken_username(
        self, accounts: FakeDatabase, admin_client: TestClient
    ) -> None:
        response = admin_client.patch("/admin/profile", json={"username": "grandma"})

        assert response.status_code == 400
        assert response.json()["detail"] == "Username already exists"
        assert accounts.find("users", id=ADMIN_ID)[0]["username"] == "carer"

    def test_password_is_not_accepted_here(
        self, accounts: FakeDatabase, admin_client: TestClient
    ) -> None:
        admin_client.patch("/admin/profile", json={"password": "hunter22", "name": "M"})
        assert accounts.find("users", id=ADMIN_ID)[0]["password_hash"] == ""
