"""Appointment schemas for request/response validation."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class AppointmentStatus(str, Enum):
    """Appointment lifecycle status in the fast-path store."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Terminal states are never left once reached."""
        return self is not AppointmentStatus.PENDING


class CountryCode(str, Enum):
    """Countries with their own confirmation worker and system of record."""

    PE = "PE"
    CL = "CL"


class AppointmentCreate(BaseModel):
    """Schema for requesting a new appointment."""

    insured_id: str | int = Field(..., examples=["123"])
    schedule_id: int = Field(..., examples=[100])
    country_code: str = Field(..., examples=["PE"])


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    insured_id: str
    schedule_id: int
    country_code: CountryCode
    status: AppointmentStatus
    created_at: datetime
    updated_at: datetime
    processing_started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for appointment list response, newest first."""

    total: int
    items: list[AppointmentResponse]
