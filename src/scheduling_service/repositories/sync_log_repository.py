"""Repository for the append-only synchronization audit trail."""

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_service.database.models import AppointmentSyncLog
from scheduling_service.repositories.base import BaseRepository
from scheduling_service.utils.errors import DatabaseError

logger = logging.getLogger(__name__)


class SyncLogRepository(BaseRepository[AppointmentSyncLog]):
    """Repository for AppointmentSyncLog operations.

    Entries are never updated; only ``create`` and the read helpers are used.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(AppointmentSyncLog, session)

    async def list_by_appointment(self, appointment_id: str) -> List[AppointmentSyncLog]:
        """Get the sync history of one appointment in chronological order."""
        try:
            result = await self.session.execute(
                select(AppointmentSyncLog)
                .where(AppointmentSyncLog.appointment_id == appointment_id)
                .order_by(AppointmentSyncLog.created_at.asc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error getting sync logs for appointment {appointment_id}: {e}")
            raise DatabaseError("Failed to retrieve sync logs") from e
