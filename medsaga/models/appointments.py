"""Fast-path appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID, VARCHAR

# Metadata for the fast-path database
metadata = MetaData()

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", UUID(as_uuid=True), primary_key=True),
    # Request
    Column("insured_id", VARCHAR(5), nullable=False),
    Column("schedule_id", Integer, nullable=False),
    Column("country_code", VARCHAR(2), nullable=False),
    # Status management
    Column("status", Text, nullable=False, server_default="pending"),
    Column("error_message", Text, nullable=True),
    # Audit fields
    Column("created_at", TIMESTAMP(timezone=True), nullable=False),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False),
    Column("processing_started_at", TIMESTAMP(timezone=True), nullable=True),
    Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
    # Constraints
    CheckConstraint(
        "status IN ('pending', 'completed', 'failed')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "(status = 'completed') = (completed_at IS NOT NULL)",
        name="appointments_completed_at_check",
    ),
    CheckConstraint("schedule_id > 0", name="appointments_schedule_id_check"),
    # Newest-first listing per insured party
    Index("ix_appointments_insured_id_created_at", "insured_id", "created_at"),
)
