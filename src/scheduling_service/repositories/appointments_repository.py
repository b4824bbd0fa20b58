"""Repository for locally stored appointments."""

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from scheduling_service.database.models import Appointment
from scheduling_service.repositories.base import BaseRepository
from scheduling_service.utils.errors import DatabaseError

logger = logging.getLogger(__name__)


class AppointmentsRepository(BaseRepository[Appointment]):
    """Repository for Appointment operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(Appointment, session)

    async def get_by_patient(self, patient_id: str) -> List[Appointment]:
        """Get all appointments of a patient, most recently scheduled first."""
        try:
            result = await self.session.execute(
                select(Appointment)
                .where(Appointment.patient_id == patient_id)
                .order_by(Appointment.scheduled_at.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Error getting appointments for patient {patient_id}: {e}")
            raise DatabaseError("Failed to retrieve appointments") from e
