"""Appointment endpoints."""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import ValidationError as PydanticValidationError

from scheduling_service.dependencies import get_scheduling_service
from scheduling_service.models.appointments import (
    AppointmentResponse,
    AvailabilityFilters,
    AvailableSlot,
    CreateAppointmentRequest,
    SyncLogResponse,
    UpdateAppointmentRequest,
)
from scheduling_service.services.scheduling_service import SchedulingService
from scheduling_service.utils.errors import ValidationError
from scheduling_service.utils.logging import get_logger

logger = get_logger("api.scheduling")

router = APIRouter(prefix="/scheduling", tags=["scheduling"])


@router.post(
    "/appointments",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Appointment",
    description="Book an appointment in the external scheduling system and store it locally.",
)
async def create_appointment(
    request: CreateAppointmentRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    appointment = await service.create_appointment(request)
    return AppointmentResponse.model_validate(appointment)


@router.get(
    "/availability",
    response_model=List[AvailableSlot],
    summary="Check Availability",
)
async def check_availability(
    start_date: date = Query(..., alias="startDate", description="First day (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, alias="endDate", description="Last day (YYYY-MM-DD)"),
    professional_id: Optional[str] = Query(None, alias="professionalId"),
    specialty: Optional[str] = Query(None),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """List bookable slots. Defaults to a 7 day window from ``startDate``."""
    try:
        filters = AvailabilityFilters(
            start_date=start_date,
            end_date=end_date,
            professional_id=professional_id,
            specialty=specialty,
        )
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid availability filters",
            errors=[{"message": err.get("msg"), "type": err.get("type")} for err in e.errors()],
        ) from e

    return await service.check_availability(filters)


@router.get(
    "/appointments/patient/{patient_id}",
    response_model=List[AppointmentResponse],
    summary="List Patient Appointments",
)
async def get_appointments_by_patient(
    patient_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Appointments of a patient, most recently scheduled first."""
    appointments = await service.get_appointments_by_patient(patient_id)
    return [AppointmentResponse.model_validate(a) for a in appointments]


@router.get(
    "/appointments/{appointment_id}",
    response_model=AppointmentResponse,
    summary="Get Appointment",
)
async def get_appointment(
    appointment_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
):
    appointment = await service.get_appointment(appointment_id)
    return AppointmentResponse.model_validate(appointment)


@router.put(
    "/appointments/{appointment_id}",
    response_model=AppointmentResponse,
    summary="Update Appointment",
    description="Apply a partial update; only the fields present in the body change.",
)
async def update_appointment(
    appointment_id: str,
    request: UpdateAppointmentRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    appointment = await service.update_appointment(appointment_id, request)
    return AppointmentResponse.model_validate(appointment)


@router.delete(
    "/appointments/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    summary="Cancel Appointment",
)
async def cancel_appointment(
    appointment_id: str,
    reason: Optional[str] = Query(None, description="Cancellation reason, appended to the notes"),
    service: SchedulingService = Depends(get_scheduling_service),
):
    await service.cancel_appointment(appointment_id, reason)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/appointments/{appointment_id}/sync-logs",
    response_model=List[SyncLogResponse],
    summary="Get Sync History",
)
async def get_sync_logs(
    appointment_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Synchronization attempts recorded for an appointment, oldest first."""
    logs = await service.get_sync_logs(appointment_id)
    return [SyncLogResponse.model_validate(log) for log in logs]
