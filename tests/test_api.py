"""Tests for the bookings REST API."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from clinic_api.api import bookings_router, register_exception_handlers
from clinic_api.api.dependencies import get_booking_service
from clinic_api.errors import PersistenceError
from clinic_api.models.schemas import ErrorResponse

BASE = "/api/v1/bookings"


@pytest.fixture
def headers(tenant):
    return {
        "X-Client-Id": str(tenant.client_id),
        "X-Company-Id": str(tenant.company_id),
        "X-User-Id": "user-1",
    }


@pytest.fixture
def client(service):
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(bookings_router)
    app.dependency_overrides[get_booking_service] = lambda: service
    return TestClient(app)


def _create(client, headers, payload):
    return client.post(BASE, json=payload, headers=headers)


# --- tenant headers ---


def test_missing_tenant_headers(client, booking_payload):
    resp = client.post(BASE, json=booking_payload())

    assert resp.status_code == 401
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "TENANT_REQUIRED"


def test_invalid_tenant_header(client, booking_payload):
    resp = client.post(
        BASE, json=booking_payload(), headers={"X-Client-Id": "abc", "X-Company-Id": "2"}
    )
    assert resp.status_code == 401
    assert resp.json()["error"] == "TENANT_REQUIRED"


# --- availability ---


def test_available_slots(client, headers, professional_id):
    resp = client.get(
        f"{BASE}/available-slots",
        params={"professional_id": professional_id, "date": "2025-12-01", "duration_minutes": 60},
        headers=headers,
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["date"] == "2025-12-01"
    assert body["duration_minutes"] == 60
    assert body["timezone"] == "America/Sao_Paulo"
    assert body["slots"][0] == "08:00"
    assert "11:00" in body["slots"]
    assert "11:30" not in body["slots"]
    assert body["slots"][-1] == "17:00"


def test_available_slots_unknown_professional(client, headers):
    resp = client.get(
        f"{BASE}/available-slots",
        params={"professional_id": "55555555-5555-5555-5555-555555555555", "date": "2025-12-01"},
        headers=headers,
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "PROFESSIONAL_NOT_FOUND"


def test_available_slots_bad_date(client, headers, professional_id):
    resp = client.get(
        f"{BASE}/available-slots",
        params={"professional_id": professional_id, "date": "01/12/2025"},
        headers=headers,
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["details"]["errors"][0]["field"] == "query.date"


def test_available_slots_zero_duration(client, headers, professional_id):
    resp = client.get(
        f"{BASE}/available-slots",
        params={"professional_id": professional_id, "date": "2025-12-01", "duration_minutes": 0},
        headers=headers,
    )
    assert resp.status_code == 400


# --- create ---


def test_create_booking(client, headers, booking_payload):
    resp = _create(client, headers, booking_payload())

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    data = body["data"]
    assert data["status"] == "scheduled"
    assert data["confirmed"] is False
    assert data["start_at"] == "2025-11-28T11:00:00Z"
    assert data["end_at"] == "2025-11-28T12:00:00Z"
    assert data["duration_minutes"] == 60


def test_create_conflict(client, headers, booking_payload):
    first = _create(client, headers, booking_payload()).json()["data"]

    resp = _create(
        client,
        headers,
        booking_payload(start_at="2025-11-28T11:30:00Z", end_at="2025-11-28T12:30:00Z"),
    )

    assert resp.status_code == 409
    body = resp.json()
    assert body["error"] == "SLOT_UNAVAILABLE"
    assert body["details"]["conflicts"] == [
        {
            "booking_id": first["id"],
            "start_at": "2025-11-28T11:00:00Z",
            "end_at": "2025-11-28T12:00:00Z",
        }
    ]


def test_create_touching_boundary(client, headers, booking_payload):
    _create(client, headers, booking_payload())

    resp = _create(
        client,
        headers,
        booking_payload(start_at="2025-11-28T12:00:00Z", end_at="2025-11-28T13:00:00Z"),
    )
    assert resp.status_code == 201


def test_create_rejects_derived_field(client, headers, booking_payload):
    resp = _create(client, headers, booking_payload(final_price="10.00"))

    assert resp.status_code == 400
    assert resp.json()["error"] == "VALIDATION_ERROR"


def test_create_naive_timestamp(client, headers, booking_payload):
    resp = _create(
        client,
        headers,
        booking_payload(start_at="2025-11-28T08:00:00", end_at="2025-11-28T09:00:00"),
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "INVALID_TIMESTAMP"


# --- read ---


def test_get_and_list(client, headers, booking_payload):
    created = _create(client, headers, booking_payload()).json()["data"]

    resp = client.get(f"{BASE}/{created['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["id"] == created["id"]

    resp = client.get(BASE, params={"status": "scheduled"}, headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 1
    assert body["data"][0]["id"] == created["id"]


def test_get_unknown_booking(client, headers):
    resp = client.get(f"{BASE}/66666666-6666-6666-6666-666666666666", headers=headers)
    assert resp.status_code == 404
    assert resp.json()["error"] == "NOT_FOUND"


def test_other_tenant_cannot_read(client, headers, booking_payload):
    created = _create(client, headers, booking_payload()).json()["data"]

    resp = client.get(
        f"{BASE}/{created['id']}", headers={"X-Client-Id": "99", "X-Company-Id": "99"}
    )
    assert resp.status_code == 404


# --- lifecycle ---


def test_update_booking(client, headers, booking_payload):
    created = _create(client, headers, booking_payload()).json()["data"]

    resp = client.patch(
        f"{BASE}/{created['id']}",
        json={"end_at": "2025-11-28T09:30:00-03:00", "notes": "longer session"},
        headers=headers,
    )

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["end_at"] == "2025-11-28T12:30:00Z"
    assert data["duration_minutes"] == 90
    assert data["notes"] == "longer session"


def test_update_rejects_status(client, headers, booking_payload):
    created = _create(client, headers, booking_payload()).json()["data"]

    resp = client.patch(f"{BASE}/{created['id']}", json={"status": "confirmed"}, headers=headers)
    assert resp.status_code == 400


def test_confirm_then_cancel(client, headers, booking_payload):
    created = _create(client, headers, booking_payload()).json()["data"]

    resp = client.patch(f"{BASE}/{created['id']}/confirm", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["confirmed"] is True
    assert resp.json()["data"]["status"] == "scheduled"

    resp = client.patch(
        f"{BASE}/{created['id']}/cancel", json={"reason": "sick"}, headers=headers
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "cancelled"
    assert data["cancellation_reason"] == "sick"
    assert data["cancelled_at"].endswith("Z")

    resp = client.patch(f"{BASE}/{created['id']}/cancel", headers=headers)
    assert resp.status_code == 409
    assert resp.json()["error"] == "INVALID_STATUS_TRANSITION"


def test_delete_booking(client, headers, booking_payload):
    created = _create(client, headers, booking_payload()).json()["data"]

    resp = client.delete(f"{BASE}/{created['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    resp = client.delete(f"{BASE}/{created['id']}", headers=headers)
    assert resp.status_code == 404


# --- persistence failures ---


def test_persistence_error_is_masked(client, headers, service):
    service.list_bookings = AsyncMock(side_effect=PersistenceError("connection refused on 10.0.0.5"))

    with patch("clinic_api.api.handlers.settings") as mock_settings:
        mock_settings.debug = False
        resp = client.get(BASE, headers=headers)

    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "PERSISTENCE_ERROR"
    assert "10.0.0.5" not in body["message"]


# --- documented error envelope ---


def test_error_envelope_is_documented(client):
    schema = client.app.openapi()

    assert "ErrorResponse" in schema["components"]["schemas"]
    create = schema["paths"][BASE]["post"]["responses"]
    for status in ("400", "401", "404", "409", "500"):
        ref = create[status]["content"]["application/json"]["schema"]["$ref"]
        assert ref.endswith("/ErrorResponse")


def test_error_body_matches_documented_envelope(client, headers):
    resp = client.get(f"{BASE}/33333333-3333-3333-3333-333333333333", headers=headers)

    assert resp.status_code == 404
    error = ErrorResponse.model_validate(resp.json())
    assert error.success is False
    assert error.error == "NOT_FOUND"
