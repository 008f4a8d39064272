"""Appointment entity and its lifecycle.

An appointment starts ``pending`` and moves exactly once to a terminal state,
``completed`` or ``failed``. Identity fields are frozen after creation.
"""

import re
from datetime import UTC, datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, ValidationError, model_validator

from medsaga.core.exceptions import ValidationException
from medsaga.schemas.appointments import AppointmentStatus, CountryCode

INSURED_ID_LENGTH = 5

_RAW_INSURED_ID = re.compile(r"^[0-9]{1,5}$")

FIELD_MESSAGES = {
    "insured_id": "insured_id must be a 5-digit number (leading zeros allowed)",
    "schedule_id": "schedule_id must be a positive integer",
    "country_code": "country_code must be one of: "
    + ", ".join(code.value for code in CountryCode),
}


def normalize_insured_id(value: str | int | None) -> str:
    """
    Left-pad a 1 to 5 digit insured id with zeros.

    Values that are not 1 to 5 ASCII digits are returned unchanged so that
    validation can report them.
    """
    if value is None:
        return ""
    text = str(value).strip()
    if _RAW_INSURED_ID.match(text):
        return text.zfill(INSURED_ID_LENGTH)
    return text


def is_valid_insured_id(value: str) -> bool:
    """True for an already normalized 5-digit insured id."""
    return len(value) == INSURED_ID_LENGTH and _RAW_INSURED_ID.fullmatch(value) is not None


def validation_error_from_pydantic(
    exc: ValidationError | None,
    extra_errors: list[dict[str, str]] | None = None,
) -> ValidationException:
    """
    Collapse a pydantic error into one entry per violated field.

    Args:
        exc: Pydantic error, or None when only extra errors apply
        extra_errors: Checks made outside the model, appended after the
            model's own errors unless the field is already reported
    """
    errors: list[dict[str, str]] = []
    seen: set[str] = set()
    for error in exc.errors() if exc is not None else []:
        field = str(error["loc"][0]) if error["loc"] else "__root__"
        if field in seen:
            continue
        seen.add(field)
        errors.append({"field": field, "message": FIELD_MESSAGES.get(field, error["msg"])})

    for error in extra_errors or []:
        if error["field"] not in seen:
            seen.add(error["field"])
            errors.append(error)

    fields = ", ".join(error["field"] for error in errors)
    return ValidationException(f"Invalid appointment: {fields}", errors=errors)


class Appointment(BaseModel):
    """Appointment as held by the fast-path store."""

    id: UUID = Field(frozen=True)
    insured_id: str = Field(frozen=True, pattern=r"^[0-9]{5}$")
    schedule_id: int = Field(frozen=True, gt=0)
    country_code: CountryCode = Field(frozen=True)
    status: AppointmentStatus = AppointmentStatus.PENDING
    created_at: datetime = Field(frozen=True)
    updated_at: datetime
    processing_started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_completion_timestamp(self) -> "Appointment":
        """completed_at is set if and only if the appointment is completed."""
        if (self.status == AppointmentStatus.COMPLETED) != (self.completed_at is not None):
            raise ValueError("completed_at must be set exactly when status is completed")
        return self

    @classmethod
    def create(
        cls,
        insured_id: str | int,
        schedule_id: int,
        country_code: str,
        appointment_id: UUID | None = None,
        now: datetime | None = None,
        supported_countries: list[str] | None = None,
    ) -> "Appointment":
        """
        Build a new pending appointment.

        Args:
            insured_id: Insured party id, 1 to 5 digits
            schedule_id: Referenced schedule
            country_code: Routing country
            appointment_id: Optional id, generated when omitted
            now: Optional creation time
            supported_countries: Countries with a running worker; any known
                country is accepted when omitted

        Returns:
            Pending appointment

        Raises:
            ValidationException: Listing every violated field
        """
        now = now or datetime.now(UTC)
        extra_errors: list[dict[str, str]] = []
        if (
            supported_countries is not None
            and country_code in {code.value for code in CountryCode}
            and country_code not in supported_countries
        ):
            extra_errors.append(
                {
                    "field": "country_code",
                    "message": "country_code must be one of: " + ", ".join(supported_countries),
                }
            )

        try:
            appointment = cls(
                id=appointment_id or uuid4(),
                insured_id=normalize_insured_id(insured_id),
                schedule_id=schedule_id,
                country_code=country_code,
                status=AppointmentStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
        except ValidationError as exc:
            raise validation_error_from_pydantic(exc, extra_errors) from exc

        if extra_errors:
            raise validation_error_from_pydantic(None, extra_errors)
        return appointment

    def start_processing(self, at: datetime | None = None) -> bool:
        """Record when processing started. Only the first call has an effect."""
        if self.status.is_terminal or self.processing_started_at is not None:
            return False
        at = at or datetime.now(UTC)
        self.processing_started_at = at
        self.updated_at = at
        return True

    def mark_completed(self, at: datetime | None = None) -> bool:
        """
        Move a pending appointment to completed.

        Returns:
            True if the status changed, False if already terminal
        """
        if self.status.is_terminal:
            return False
        at = at or datetime.now(UTC)
        self.completed_at = at
        self.status = AppointmentStatus.COMPLETED
        self.updated_at = at
        return True

    def mark_failed(self, error_message: str, at: datetime | None = None) -> bool:
        """
        Move a pending appointment to failed.

        Returns:
            True if the status changed, False if already terminal
        """
        if self.status.is_terminal:
            return False
        at = at or datetime.now(UTC)
        self.status = AppointmentStatus.FAILED
        self.error_message = error_message
        self.updated_at = at
        return True
