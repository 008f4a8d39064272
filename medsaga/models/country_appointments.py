"""Country system-of-record table model using SQLAlchemy Core.

Every supported country owns a separate database with this same table.
"""

from sqlalchemy import Column, Index, Integer, MetaData, Table, Text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID, VARCHAR

metadata = MetaData()

confirmed_appointments = Table(
    "confirmed_appointments",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    Column("insured_id", VARCHAR(5), nullable=False),
    Column("schedule_id", Integer, nullable=False),
    # Snapshot of the resolved schedule
    Column("center_id", Integer, nullable=False),
    Column("specialty_id", Integer, nullable=False),
    Column("practitioner_id", Integer, nullable=False),
    Column("appointment_date", TIMESTAMP(timezone=True), nullable=False),
    Column("country_code", VARCHAR(2), nullable=False),
    Column("status", Text, nullable=False),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
    Index("ix_confirmed_appointments_insured_id", "insured_id", "created_at"),
)
