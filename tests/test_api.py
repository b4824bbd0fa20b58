"""Tests for the HTTP API."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from conftest import make_adapter
from scheduling_service.database.models import (
    Appointment,
    AppointmentStatus,
    AppointmentSyncLog,
    SyncOperation,
)
from scheduling_service.dependencies import get_health_service, get_scheduling_service
from scheduling_service.main import create_app
from scheduling_service.models.appointments import AvailableSlot
from scheduling_service.resilience.circuit_breaker import CircuitBreaker
from scheduling_service.resilience.retry import RetryExecutor
from scheduling_service.services.health_service import HealthService
from scheduling_service.utils.errors import (
    BusinessRejectionError,
    CircuitOpenError,
    MissingExternalIdError,
    NotFoundError,
    RetryExhaustedError,
)


def make_appointment(**overrides) -> Appointment:
    values = {
        "id": "appt-1",
        "external_id": "EXT-1",
        "adapter_type": "StubAdapter",
        "patient_id": "patient-1",
        "professional_id": "doc-1",
        "scheduled_at": datetime(2026, 11, 2, 14, 0, tzinfo=timezone.utc),
        "status": AppointmentStatus.CONFIRMED,
        "notes": None,
        "metadata_": {"room": "A"},
    }
    values.update(overrides)
    return Appointment(**values)


@pytest.fixture
def service() -> MagicMock:
    service = MagicMock()
    service.create_appointment = AsyncMock(return_value=make_appointment())
    service.update_appointment = AsyncMock(return_value=make_appointment(notes="updated"))
    service.cancel_appointment = AsyncMock(return_value=None)
    service.get_appointment = AsyncMock(return_value=make_appointment())
    service.get_appointments_by_patient = AsyncMock(return_value=[make_appointment()])
    service.get_sync_logs = AsyncMock(return_value=[])
    service.check_availability = AsyncMock(return_value=[])
    return service


@pytest.fixture
def breaker() -> CircuitBreaker:
    return CircuitBreaker()


@pytest.fixture
def app(service, breaker):
    app = create_app()
    app.dependency_overrides[get_scheduling_service] = lambda: service
    app.dependency_overrides[get_health_service] = lambda: HealthService(
        make_adapter(), breaker, RetryExecutor()
    )
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


BOOKING = {
    "patientId": "patient-1",
    "professionalId": "doc-1",
    "scheduledAt": "2026-11-02T14:00:00Z",
    "metadata": {"room": "A"},
}


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["adapter"] == "mock"


def test_create_appointment(client, service):
    response = client.post("/scheduling/appointments", json=BOOKING)

    assert response.status_code == 201
    body = response.json()
    assert body["id"] == "appt-1"
    assert body["externalId"] == "EXT-1"
    assert body["patientId"] == "patient-1"
    assert body["status"] == "CONFIRMED"
    assert body["metadata"] == {"room": "A"}
    assert "X-Request-ID" in response.headers

    request = service.create_appointment.await_args.args[0]
    assert request.patient_id == "patient-1"
    assert request.scheduled_at == datetime(2026, 11, 2, 14, 0, tzinfo=timezone.utc)


def test_create_appointment_validation_error(client, service):
    response = client.post("/scheduling/appointments", json={"scheduledAt": "tomorrow"})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    fields = {e["field"] for e in error["details"]["validation_errors"]}
    assert "body.patientId" in fields
    service.create_appointment.assert_not_awaited()


@pytest.mark.parametrize(
    "error, status_code, code",
    [
        (BusinessRejectionError("Slot taken"), 422, "BUSINESS_REJECTION"),
        (CircuitOpenError(retry_after=30), 503, "SERVICE_UNAVAILABLE"),
        (RetryExhaustedError(3, ConnectionError("down")), 502, "RETRY_EXHAUSTED"),
    ],
)
def test_create_appointment_error_mapping(client, service, error, status_code, code):
    service.create_appointment.side_effect = error

    response = client.post("/scheduling/appointments", json=BOOKING)

    assert response.status_code == status_code
    assert response.json()["error"]["code"] == code


def test_get_appointment_not_found(client, service):
    service.get_appointment.side_effect = NotFoundError("Appointment", "missing")

    response = client.get("/scheduling/appointments/missing")

    assert response.status_code == 404
    assert response.json()["error"]["message"] == "Appointment not found with id: missing"


def test_get_appointments_by_patient(client, service):
    response = client.get("/scheduling/appointments/patient/patient-1")

    assert response.status_code == 200
    assert [a["id"] for a in response.json()] == ["appt-1"]
    service.get_appointments_by_patient.assert_awaited_once_with("patient-1")


def test_update_appointment(client, service):
    response = client.put("/scheduling/appointments/appt-1", json={"notes": "updated"})

    assert response.status_code == 200
    assert response.json()["notes"] == "updated"
    appointment_id, request = service.update_appointment.await_args.args
    assert appointment_id == "appt-1"
    assert request.notes == "updated"
    assert request.scheduled_at is None


def test_update_without_external_id(client, service):
    service.update_appointment.side_effect = MissingExternalIdError("appt-1")

    response = client.put("/scheduling/appointments/appt-1", json={"notes": "x"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "MISSING_EXTERNAL_ID"


def test_cancel_appointment(client, service):
    response = client.delete("/scheduling/appointments/appt-1", params={"reason": "Patient request"})

    assert response.status_code == 204
    assert response.content == b""
    service.cancel_appointment.assert_awaited_once_with("appt-1", "Patient request")


def test_sync_logs(client, service):
    service.get_sync_logs.return_value = [
        AppointmentSyncLog(
            id="log-1",
            appointment_id="appt-1",
            adapter_type="StubAdapter",
            operation=SyncOperation.CREATE,
            request={"patientId": "patient-1"},
            response={"success": True},
            success=True,
        )
    ]

    response = client.get("/scheduling/appointments/appt-1/sync-logs")

    assert response.status_code == 200
    (log,) = response.json()
    assert log["appointmentId"] == "appt-1"
    assert log["operation"] == "CREATE"
    assert log["success"] is True


def test_availability(client, service):
    service.check_availability.return_value = [
        AvailableSlot(date="2026-10-19", time="08:00", available=True, professional="doc-1")
    ]

    response = client.get(
        "/scheduling/availability",
        params={"startDate": "2026-10-19", "professionalId": "doc-1"},
    )

    assert response.status_code == 200
    assert response.json()[0]["time"] == "08:00"
    filters = service.check_availability.await_args.args[0]
    assert filters.professional_id == "doc-1"
    assert filters.end_date is None


def test_availability_requires_start_date(client):
    assert client.get("/scheduling/availability").status_code == 400


def test_availability_rejects_inverted_range(client, service):
    response = client.get(
        "/scheduling/availability",
        params={"startDate": "2026-10-20", "endDate": "2026-10-19"},
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    service.check_availability.assert_not_awaited()


def test_unknown_route(client):
    response = client.get("/nope")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "HTTP_ERROR"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["circuitBreaker"]["state"] == "CLOSED"


def test_liveness(client):
    assert client.get("/health/live").json() == {"alive": True}


def test_readiness(client):
    response = client.get("/health/ready")
    assert response.status_code == 200
    assert response.json() == {"ready": True}


@pytest.mark.asyncio
async def test_readiness_fails_while_circuit_open(client, breaker):
    async def fail():
        raise ConnectionError("down")

    for _ in range(breaker.failure_threshold):
        with pytest.raises(ConnectionError):
            await breaker.execute(fail)

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.json() == {"ready": False}
