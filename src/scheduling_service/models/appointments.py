"""Pydantic models for appointments, adapter results and availability."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from scheduling_service.database.models import AppointmentStatus, SyncOperation


class CamelModel(BaseModel):
    """Base model that speaks camelCase on the wire and accepts snake_case too."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to a JSON-safe camelCase dict without unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class CreateAppointmentRequest(CamelModel):
    """Request model for booking an appointment in the external system."""

    patient_id: str = Field(..., min_length=1, description="Patient ID in the Core service")
    professional_id: Optional[str] = Field(None, description="Health professional ID")
    scheduled_at: datetime = Field(..., description="Appointment date and time (ISO8601)")
    notes: Optional[str] = Field(None, description="Free text notes")
    metadata: Optional[Dict[str, Any]] = Field(
        None, description="Adapter specific key/value bag passed through untouched"
    )


class UpdateAppointmentRequest(CamelModel):
    """Partial update; only the fields that are present are applied."""

    scheduled_at: Optional[datetime] = Field(None, description="New date and time (ISO8601)")
    professional_id: Optional[str] = Field(None, description="Health professional ID")
    notes: Optional[str] = Field(None, description="Replacement notes")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Metadata merged into the existing bag")


class AvailabilityFilters(CamelModel):
    """Filters for an availability query."""

    start_date: date = Field(..., description="First day to search (ISO8601)")
    end_date: Optional[date] = Field(None, description="Last day to search (defaults to start + 7 days)")
    professional_id: Optional[str] = Field(None, description="Restrict to one professional")
    specialty: Optional[str] = Field(None, description="Medical specialty")

    @model_validator(mode="after")
    def check_range(self) -> "AvailabilityFilters":
        """Reject inverted date ranges."""
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


class AvailableSlot(CamelModel):
    """A single availability slot reported by an adapter."""

    date: str = Field(..., description="Slot day (YYYY-MM-DD)")
    time: str = Field(..., description="Slot start time (HH:MM)")
    available: bool = Field(..., description="Whether the slot can be booked")
    professional: Optional[str] = None
    location: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class ExternalAppointment(CamelModel):
    """Appointment as the external system reports it."""

    id: str
    external_id: Optional[str] = None
    patient_id: str
    professional_id: Optional[str] = None
    scheduled_at: datetime
    status: AppointmentStatus
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class AppointmentResult(CamelModel):
    """Business-level outcome of an adapter call.

    A rejection by the external system is reported as ``success=False`` with an
    ``error``; transport failures are raised instead.
    """

    success: bool
    external_id: Optional[str] = None
    appointment: Optional[ExternalAppointment] = None
    error: Optional[str] = None


class AppointmentResponse(CamelModel):
    """Response model for a locally stored appointment."""

    id: str
    external_id: Optional[str] = None
    adapter_type: str
    patient_id: str
    professional_id: Optional[str] = None
    scheduled_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    status: AppointmentStatus
    notes: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(
        None, validation_alias=AliasChoices("metadata_", "metadata"), serialization_alias="metadata"
    )
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SyncLogResponse(CamelModel):
    """Response model for one synchronization attempt."""

    id: str
    appointment_id: Optional[str] = None
    adapter_type: str
    operation: SyncOperation
    request: Dict[str, Any]
    response: Optional[Dict[str, Any]] = None
    success: bool
    error: Optional[str] = None
    created_at: Optional[datetime] = None
