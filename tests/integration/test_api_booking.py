"""
Integration tests for the booking HTTP API.

The app runs on the TestClient's own event loop, so schema creation and
seeding are executed through client.portal on that same loop.
"""

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from api.main import create_app
from booking.transactions import BookingOrchestrator
from booking.validators import TemporalPolicy
from database.connection import create_engine_from_url, create_schema, create_session_factory

NOW = datetime(2030, 1, 15, 8, 0, tzinfo=UTC)
JWT_SECRET = "test-jwt-secret"
# Differs from the 60 minute default so the configured length is observable
CONFIGURED_SLOT_DURATION = timedelta(minutes=30)


def make_token(user_id, role: str = "CUSTOMER", provider_id=None) -> str:
    claims = {
        "sub": str(user_id),
        "role": role,
        "exp": int((datetime.now(UTC) + timedelta(hours=1)).timestamp()),
    }
    if provider_id is not None:
        claims["provider_id"] = str(provider_id)
    return jwt.encode(claims, JWT_SECRET, algorithm="HS256")


def auth(user_id, role: str = "CUSTOMER", provider_id=None) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id, role, provider_id)}"}


@pytest.fixture
def api(tmp_path, booking_seeder):
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}")
    orchestrator = BookingOrchestrator(
        create_session_factory(engine),
        policy=TemporalPolicy(slot_duration=CONFIGURED_SLOT_DURATION),
        clock=lambda: NOW,
    )
    app = create_app(orchestrator=orchestrator)

    with TestClient(app) as client:
        client.portal.call(create_schema, engine)
        data = client.portal.call(booking_seeder, orchestrator.session_factory)
        yield SimpleNamespace(client=client, data=data)
        client.portal.call(engine.dispose)


def create_body(data, index: int = 0) -> dict:
    return {
        "service_id": str(data.service_id),
        "time_slot_id": str(data.slot_ids[index]),
        "scheduled_at": data.slot_starts[index].isoformat(),
        "notes": "Window seat",
    }


class TestAuthentication:
    def test_missing_token_is_401(self, api):
        response = api.client.get("/appointments")

        assert response.status_code == 401
        assert response.json() == {"error": "AUTHENTICATION", "message": "Not authenticated"}
        assert response.headers["www-authenticate"] == "Bearer"

    def test_bad_signature_is_401(self, api):
        token = jwt.encode({"sub": str(api.data.customer_id)}, "wrong-secret", algorithm="HS256")

        response = api.client.get("/appointments", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error"] == "AUTHENTICATION"

    def test_missing_subject_is_401(self, api):
        token = jwt.encode({"role": "CUSTOMER"}, JWT_SECRET, algorithm="HS256")

        response = api.client.get("/appointments", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401


class TestAppointmentsApi:
    def test_create_returns_201(self, api):
        response = api.client.post(
            "/appointments", json=create_body(api.data), headers=auth(api.data.customer_id)
        )

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["time_slot_id"] == str(api.data.slot_ids[0])
        assert body["service"]["name"] == "Haircut"
        assert body["time_slot"]["is_available"] is False

    def test_double_booking_is_409(self, api):
        api.client.post("/appointments", json=create_body(api.data), headers=auth(api.data.customer_id))

        response = api.client.post(
            "/appointments", json=create_body(api.data), headers=auth(api.data.other_customer_id)
        )

        assert response.status_code == 409
        assert response.json()["error"] == "CONFLICT"

    def test_naive_timestamp_is_400(self, api):
        body = create_body(api.data)
        body["scheduled_at"] = "2030-01-16T09:00:00"

        response = api.client.post("/appointments", json=body, headers=auth(api.data.customer_id))

        assert response.status_code == 400
        assert response.json() == {"error": "VALIDATION", "message": "Timestamp must include a timezone offset"}

    def test_malformed_body_is_400(self, api):
        response = api.client.post(
            "/appointments", json={"service_id": "not-a-uuid"}, headers=auth(api.data.customer_id)
        )

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION"

    def test_unknown_appointment_is_404(self, api):
        response = api.client.get(
            "/appointments/00000000-0000-0000-0000-000000000000", headers=auth(api.data.customer_id)
        )

        assert response.status_code == 404
        assert response.json()["message"] == "Appointment not found"

    def test_other_customer_gets_403(self, api):
        created = api.client.post(
            "/appointments", json=create_body(api.data), headers=auth(api.data.customer_id)
        ).json()

        response = api.client.get(
            f"/appointments/{created['id']}", headers=auth(api.data.other_customer_id)
        )

        assert response.status_code == 403
        assert response.json()["error"] == "AUTHORIZATION"

    def test_list_reschedule_cancel_flow(self, api):
        headers = auth(api.data.customer_id)
        created = api.client.post("/appointments", json=create_body(api.data), headers=headers).json()

        moved = api.client.put(
            f"/appointments/{created['id']}",
            json={
                "time_slot_id": str(api.data.slot_ids[1]),
                "scheduled_at": api.data.slot_starts[1].isoformat(),
            },
            headers=headers,
        )
        cancelled = api.client.patch(
            f"/appointments/{created['id']}/cancel", json={"reason": "Travel"}, headers=headers
        )
        listing = api.client.get("/appointments", params={"status": "cancelled"}, headers=headers)

        assert moved.status_code == 200
        assert moved.json()["time_slot_id"] == str(api.data.slot_ids[1])
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "cancelled"
        assert cancelled.json()["cancel_reason"] == "Travel"
        assert listing.json()["pagination"] == {"total": 1, "page": 1, "limit": 10, "pages": 1}

    def test_delete_cancels_and_second_delete_is_400(self, api):
        headers = auth(api.data.customer_id)
        created = api.client.post("/appointments", json=create_body(api.data), headers=headers).json()

        first = api.client.delete(f"/appointments/{created['id']}", headers=headers)
        second = api.client.delete(f"/appointments/{created['id']}", headers=headers)

        assert first.status_code == 200
        assert second.status_code == 400

    def test_stats(self, api):
        headers = auth(api.data.customer_id)
        api.client.post("/appointments", json=create_body(api.data, 0), headers=headers)
        api.client.post("/appointments", json=create_body(api.data, 1), headers=headers)

        response = api.client.get("/appointments/stats", headers=headers)

        assert response.json() == {
            "total": 2,
            "pending": 2,
            "confirmed": 0,
            "cancelled": 0,
            "completed": 0,
            "completion_rate": "0.00",
        }

    def test_provider_listing_restricted(self, api):
        path = f"/appointments/provider/{api.data.provider_id}"

        as_customer = api.client.get(path, headers=auth(api.data.customer_id))
        as_provider = api.client.get(
            path,
            headers=auth(api.data.provider_user_id, "PROVIDER", api.data.provider_id),
        )

        assert as_customer.status_code == 403
        assert as_provider.status_code == 200


class TestSlotsApi:
    def test_service_availability(self, api):
        response = api.client.get(
            f"/services/{api.data.service_id}/slots",
            params={"date": "2030-01-16"},
            headers=auth(api.data.customer_id),
        )

        assert response.status_code == 200
        assert [slot["id"] for slot in response.json()] == [str(s) for s in api.data.slot_ids]

    def test_availability_needs_no_token(self, api):
        by_service = api.client.get(f"/services/{api.data.service_id}/slots", params={"date": "2030-01-16"})
        by_provider = api.client.get(f"/providers/{api.data.provider_id}/slots", params={"date": "2030-01-16"})

        assert by_service.status_code == 200
        assert by_provider.status_code == 200
        assert len(by_service.json()) == len(api.data.slot_ids)
        assert by_provider.json() == by_service.json()

    def test_bad_date_is_400(self, api):
        response = api.client.get(
            f"/providers/{api.data.provider_id}/slots",
            params={"date": "16-01-2030"},
            headers=auth(api.data.customer_id),
        )

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid date format. Use YYYY-MM-DD"

    def test_provider_creates_slots(self, api):
        response = api.client.post(
            f"/providers/{api.data.provider_id}/slots",
            json={"date": "2030-01-17", "start_time": "09:00", "end_time": "11:00", "slot_duration": 60},
            headers=auth(api.data.provider_user_id, "PROVIDER", api.data.provider_id),
        )

        assert response.status_code == 201
        assert len(response.json()) == 2

    def test_slot_duration_defaults_to_configured_length(self, api):
        response = api.client.post(
            f"/providers/{api.data.provider_id}/slots",
            json={"date": "2030-01-17", "start_time": "09:00", "end_time": "11:00"},
            headers=auth(api.data.provider_user_id, "PROVIDER", api.data.provider_id),
        )

        assert response.status_code == 201
        assert [slot["start_time"][11:16] for slot in response.json()] == ["09:00", "09:30", "10:00", "10:30"]

    def test_customer_cannot_create_slots(self, api):
        response = api.client.post(
            f"/providers/{api.data.provider_id}/slots",
            json={"date": "2030-01-17", "start_time": "09:00", "end_time": "11:00"},
            headers=auth(api.data.customer_id),
        )

        assert response.status_code == 403

    def test_block_slot(self, api):
        response = api.client.patch(
            f"/slots/{api.data.slot_ids[0]}/block",
            json={"is_blocked": True},
            headers=auth(api.data.provider_user_id, "PROVIDER", api.data.provider_id),
        )

        assert response.status_code == 200
        assert response.json()["is_blocked"] is True


class TestServicesApi:
    def test_admin_deactivates_service(self, api):
        response = api.client.delete(
            f"/services/{api.data.service_id}", headers=auth(api.data.admin_id, "ADMIN")
        )

        assert response.status_code == 200
        assert response.json()["is_active"] is False


def test_openapi_documents_error_body(api):
    schema = api.client.get("/openapi.json").json()

    responses = schema["paths"]["/appointments"]["post"]["responses"]
    assert responses["409"]["content"]["application/json"]["schema"] == {
        "$ref": "#/components/schemas/ErrorResponse"
    }
    assert set(schema["components"]["schemas"]["ErrorResponse"]["required"]) == {"error", "message"}


def test_health(api):
    response = api.client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "database": "connected"}
