from __future__ import annotations

import pytest

from backend.app import models
from backend.app.services import StudentNotFoundError, StudentService


def test_create_and_fetch_student(client):
    response = client.post("/students", json={"full_name": "  Maryam Ali  "})
    assert response.status_code == 201, response.text

    created = response.json()
    assert created["full_name"] == "Maryam Ali"
    assert created["billing_preference"] == "semester"
    assert created["forgiven"] is False

    fetched = client.get(f"/students/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["id"] == created["id"]


def test_blank_student_name_is_rejected(client):
    response = client.post("/students", json={"full_name": "   "})

    assert response.status_code == 422


def test_list_students_filters_by_billing_preference(client, seed_students):
    response = client.get("/students", params={"billing_preference": "monthly"})

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 1
    assert data["items"][0]["full_name"] == "Zainab Kareem"


def test_unknown_student_returns_not_found(client):
    assert client.get("/students/unknown").status_code == 404


def test_get_students_by_ids_keeps_request_order(db_session, seed_students):
    ids = [seed_students["omar"].id, seed_students["ali"].id]

    students = StudentService.get_students_by_ids(db_session, ids, for_update=True)

    assert [student.id for student in students] == ids


def test_get_students_by_ids_reports_missing_ids(db_session, seed_students):
    with pytest.raises(StudentNotFoundError) as excinfo:
        StudentService.get_students_by_ids(
            db_session, [seed_students["ali"].id, "ghost"]
        )

    assert excinfo.value.missing_ids == ["ghost"]
    assert db_session.query(models.Student).count() == 4
