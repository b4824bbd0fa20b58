"""Data access layer."""

from scheduling_service.repositories.appointments_repository import AppointmentsRepository
from scheduling_service.repositories.base import BaseRepository
from scheduling_service.repositories.sync_log_repository import SyncLogRepository

__all__ = ["AppointmentsRepository", "BaseRepository", "SyncLogRepository"]
