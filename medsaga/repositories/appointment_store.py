"""Fast-path appointment store: interface and adapters."""

import asyncio
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medsaga.core.exceptions import StorageException
from medsaga.database import session_scope
from medsaga.domain.appointment import Appointment
from medsaga.models.appointments import appointments
from medsaga.schemas.appointments import AppointmentStatus

logger = structlog.get_logger()


@runtime_checkable
class AppointmentStore(Protocol):
    """Primary appointment records keyed by id, with an insured-id access path."""

    async def put(self, appointment: Appointment) -> Appointment:
        """Insert a new appointment. Raises StorageException on failure."""
        ...

    async def get_by_id(self, appointment_id: UUID) -> Appointment | None:
        """Fetch one appointment, or None."""
        ...

    async def query_by_insured_id(self, insured_id: str) -> list[Appointment]:
        """List an insured party's appointments, newest first."""
        ...

    async def update_status(
        self,
        appointment_id: UUID,
        status: AppointmentStatus,
        timestamp: datetime,
        expected_status: AppointmentStatus = AppointmentStatus.PENDING,
        error_message: str | None = None,
    ) -> bool:
        """
        Conditionally change the status of one appointment.

        The write only applies while the stored status equals
        ``expected_status``.

        Returns:
            True if the record was updated, False otherwise
        """
        ...


def _status_values(
    status: AppointmentStatus,
    timestamp: datetime,
    error_message: str | None,
) -> dict:
    values: dict = {"status": status.value, "updated_at": timestamp}
    if status == AppointmentStatus.COMPLETED:
        values["completed_at"] = timestamp
    elif status == AppointmentStatus.FAILED:
        values["error_message"] = error_message
    return values


class SQLAppointmentStore:
    """PostgreSQL adapter built on SQLAlchemy Core."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize store with a session factory."""
        self.session_factory = session_factory

    async def put(self, appointment: Appointment) -> Appointment:
        """Insert a new appointment row."""
        values = appointment.model_dump()
        values["status"] = appointment.status.value
        values["country_code"] = appointment.country_code.value
        stmt = insert(appointments).values(**values)
        try:
            async with session_scope(self.session_factory) as session:
                await session.execute(stmt)
                await session.commit()
        except IntegrityError as e:
            logger.error("appointment_write_rejected", appointment_id=str(appointment.id))
            raise StorageException(f"Appointment {appointment.id} was rejected") from e
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "appointment_write_failed",
                appointment_id=str(appointment.id),
                error=str(e),
            )
            raise StorageException("Appointment store unavailable") from e
        return appointment

    async def get_by_id(self, appointment_id: UUID) -> Appointment | None:
        """Fetch one appointment row."""
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(stmt)
                row = result.mappings().first()
        except (SQLAlchemyError, OSError) as e:
            raise StorageException("Appointment store unavailable") from e

        return Appointment.model_validate(dict(row)) if row else None

    async def query_by_insured_id(self, insured_id: str) -> list[Appointment]:
        """List appointments for an insured party ordered by creation time, newest first."""
        stmt = (
            select(appointments)
            .where(appointments.c.insured_id == insured_id)
            .order_by(appointments.c.created_at.desc())
        )
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(stmt)
                rows = result.mappings().all()
        except (SQLAlchemyError, OSError) as e:
            raise StorageException("Appointment store unavailable") from e

        return [Appointment.model_validate(dict(row)) for row in rows]

    async def update_status(
        self,
        appointment_id: UUID,
        status: AppointmentStatus,
        timestamp: datetime,
        expected_status: AppointmentStatus = AppointmentStatus.PENDING,
        error_message: str | None = None,
    ) -> bool:
        """Compare-and-set the status column in a single UPDATE."""
        stmt = (
            update(appointments)
            .where(
                appointments.c.id == appointment_id,
                appointments.c.status == expected_status.value,
            )
            .values(**_status_values(status, timestamp, error_message))
        )
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "appointment_status_update_failed",
                appointment_id=str(appointment_id),
                error=str(e),
            )
            raise StorageException("Appointment store unavailable") from e

        return result.rowcount == 1


class InMemoryAppointmentStore:
    """Process-local adapter with the same contract, used by tests and local runs."""

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._records: dict[UUID, Appointment] = {}
        self._lock = asyncio.Lock()

    async def put(self, appointment: Appointment) -> Appointment:
        """Insert a copy of the appointment."""
        async with self._lock:
            if appointment.id in self._records:
                raise StorageException(f"Appointment {appointment.id} was rejected")
            self._records[appointment.id] = appointment.model_copy()
        return appointment

    async def get_by_id(self, appointment_id: UUID) -> Appointment | None:
        """Fetch a copy of one appointment."""
        record = self._records.get(appointment_id)
        return record.model_copy() if record else None

    async def query_by_insured_id(self, insured_id: str) -> list[Appointment]:
        """List copies, newest first."""
        matches = [r for r in self._records.values() if r.insured_id == insured_id]
        matches.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy() for r in matches]

    async def update_status(
        self,
        appointment_id: UUID,
        status: AppointmentStatus,
        timestamp: datetime,
        expected_status: AppointmentStatus = AppointmentStatus.PENDING,
        error_message: str | None = None,
    ) -> bool:
        """Compare-and-set under the store lock."""
        async with self._lock:
            record = self._records.get(appointment_id)
            if record is None or record.status != expected_status:
                return False
            self._records[appointment_id] = Appointment.model_validate(
                {**record.model_dump(), **_status_values(status, timestamp, error_message)}
            )
        return True
