"""Schedule schemas."""

from datetime import UTC, datetime

from pydantic import BaseModel, field_validator


class Schedule(BaseModel):
    """A bookable slot: center, specialty and practitioner at a date."""

    schedule_id: int
    center_id: int
    specialty_id: int
    practitioner_id: int
    date: datetime

    model_config = {"frozen": True}

    @field_validator("date")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Treat naive dates as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    def is_valid(self, now: datetime | None = None) -> bool:
        """Check that every identifier is positive and the date is in the future."""
        now = now or datetime.now(UTC)
        return (
            self.schedule_id > 0
            and self.center_id > 0
            and self.specialty_id > 0
            and self.practitioner_id > 0
            and self.date > now
        )
