"""Country system-of-record schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from medsaga.schemas.appointments import CountryCode

CONFIRMED_STATUS = "confirmed"


class CountryAppointmentRecord(BaseModel):
    """Appointment projection enriched with the resolved schedule."""

    id: UUID
    insured_id: str
    schedule_id: int
    center_id: int
    specialty_id: int
    practitioner_id: int
    appointment_date: datetime
    country_code: CountryCode
    status: str = CONFIRMED_STATUS
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
