"""Database package: models, engine and session management."""

from scheduling_service.database.models import (
    Appointment,
    AppointmentStatus,
    AppointmentSyncLog,
    Base,
    SyncOperation,
)

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AppointmentSyncLog",
    "Base",
    "SyncOperation",
]
