"""SQLAlchemy database models."""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class AppointmentStatus(str, enum.Enum):
    """Lifecycle of a booking."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class SyncOperation(str, enum.Enum):
    """Kind of synchronization attempt recorded in the audit trail."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    CANCEL = "CANCEL"
    SYNC = "SYNC"


class Appointment(Base):
    """Local record of one booking and its last known state."""

    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    # Set once the external system confirms the booking
    external_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    adapter_type: Mapped[str] = mapped_column(String(100), nullable=False)

    patient_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    professional_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status", native_enum=False, length=20),
        default=AppointmentStatus.PENDING,
        nullable=False,
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # "metadata" is reserved by the declarative base
    metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Appointment id={self.id} external_id={self.external_id} status={self.status}>"


class AppointmentSyncLog(Base):
    """Append-only record of one synchronization attempt against an adapter."""

    __tablename__ = "appointment_sync_log"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    # Null when a create was rejected before any local row existed
    appointment_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    adapter_type: Mapped[str] = mapped_column(String(100), nullable=False)
    operation: Mapped[SyncOperation] = mapped_column(
        Enum(SyncOperation, name="sync_operation", native_enum=False, length=10),
        nullable=False,
    )
    request: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False)
    response: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return (
            f"<AppointmentSyncLog id={self.id} operation={self.operation} "
            f"success={self.success}>"
        )
