"""Country system-of-record store: interface and adapters."""

import asyncio
from typing import Protocol, runtime_checkable
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medsaga.core.exceptions import StorageException
from medsaga.database import session_scope
from medsaga.models.country_appointments import confirmed_appointments
from medsaga.schemas.country_appointments import CountryAppointmentRecord

logger = structlog.get_logger()


@runtime_checkable
class CountryAppointmentStore(Protocol):
    """Confirmed appointments of a single country, keyed by appointment id."""

    country_code: str

    async def upsert(self, record: CountryAppointmentRecord) -> None:
        """Insert, or overwrite status and updated_at when the id exists."""
        ...

    async def query_by_insured_id(self, insured_id: str) -> list[CountryAppointmentRecord]:
        """List an insured party's confirmed appointments, newest first."""
        ...


class SQLCountryAppointmentStore:
    """PostgreSQL adapter using INSERT ... ON CONFLICT DO UPDATE."""

    def __init__(
        self,
        country_code: str,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        """Initialize store for one country."""
        self.country_code = country_code
        self.session_factory = session_factory

    async def upsert(self, record: CountryAppointmentRecord) -> None:
        """Write the record; redelivery of the same id never duplicates a row."""
        values = record.model_dump()
        values["country_code"] = record.country_code.value
        stmt = insert(confirmed_appointments).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[confirmed_appointments.c.id],
            set_={
                "status": stmt.excluded.status,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        try:
            async with session_scope(self.session_factory) as session:
                await session.execute(stmt)
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "country_store_write_failed",
                country_code=self.country_code,
                appointment_id=str(record.id),
                error=str(e),
            )
            raise StorageException(f"{self.country_code} appointment store unavailable") from e

    async def query_by_insured_id(self, insured_id: str) -> list[CountryAppointmentRecord]:
        """List confirmed appointments, newest first."""
        stmt = (
            select(confirmed_appointments)
            .where(confirmed_appointments.c.insured_id == insured_id)
            .order_by(confirmed_appointments.c.created_at.desc())
        )
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(stmt)
                rows = result.mappings().all()
        except (SQLAlchemyError, OSError) as e:
            raise StorageException(f"{self.country_code} appointment store unavailable") from e

        return [CountryAppointmentRecord.model_validate(dict(row)) for row in rows]


class InMemoryCountryAppointmentStore:
    """Process-local adapter with the same upsert contract."""

    def __init__(self, country_code: str):
        """Initialize an empty store for one country."""
        self.country_code = country_code
        self._records: dict[UUID, CountryAppointmentRecord] = {}
        self._lock = asyncio.Lock()

    async def upsert(self, record: CountryAppointmentRecord) -> None:
        """Insert, or overwrite status and updated_at of the existing row."""
        async with self._lock:
            existing = self._records.get(record.id)
            if existing is None:
                self._records[record.id] = record.model_copy()
            else:
                self._records[record.id] = existing.model_copy(
                    update={"status": record.status, "updated_at": record.updated_at}
                )

    async def query_by_insured_id(self, insured_id: str) -> list[CountryAppointmentRecord]:
        """List copies, newest first."""
        matches = [r for r in self._records.values() if r.insured_id == insured_id]
        matches.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy() for r in matches]

    def __len__(self) -> int:
        return len(self._records)
