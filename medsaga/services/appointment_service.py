"""Appointment saga orchestrator: the synchronous half of the saga."""

from datetime import UTC, datetime
from uuid import UUID

import structlog

from medsaga.config import settings
from medsaga.core.exceptions import (
    MessagingException,
    NotFoundException,
    ValidationException,
)
from medsaga.domain.appointment import (
    FIELD_MESSAGES,
    Appointment,
    is_valid_insured_id,
    normalize_insured_id,
)
from medsaga.messaging.channels import RequestChannel
from medsaga.repositories.appointment_store import AppointmentStore
from medsaga.schemas.appointments import AppointmentListResponse, AppointmentStatus
from medsaga.schemas.messages import RequestMessage
from medsaga.services.schedule_service import ScheduleLookup

logger = structlog.get_logger()


class AppointmentService:
    """Service for creating, completing and listing appointments."""

    def __init__(
        self,
        store: AppointmentStore,
        request_channel: RequestChannel,
        schedule_lookup: ScheduleLookup,
        supported_countries: list[str] | None = None,
    ):
        """
        Initialize service with its store, channel and schedule lookup.

        Args:
            supported_countries: Countries accepted by create, defaulting to
                the enabled countries in settings
        """
        self.store = store
        self.request_channel = request_channel
        self.schedule_lookup = schedule_lookup
        self.supported_countries = (
            supported_countries
            if supported_countries is not None
            else settings.supported_countries
        )

    async def create(
        self,
        insured_id: str | int,
        schedule_id: int,
        country_code: str,
    ) -> Appointment:
        """
        Create a pending appointment and publish it for country confirmation.

        The store write always happens before the publish. The call never
        waits for the country side.

        Args:
            insured_id: Insured party id, 1 to 5 digits
            schedule_id: Schedule to book
            country_code: Country that confirms the appointment

        Returns:
            The pending appointment

        Raises:
            ValidationException: Listing every invalid field
            NotFoundException: If the schedule does not exist
            StorageException: If the appointment could not be written
            MessagingException: If the request could not be published after
                the write; the appointment then stays pending
        """
        appointment = Appointment.create(
            insured_id,
            schedule_id,
            country_code,
            supported_countries=self.supported_countries,
        )

        # Advisory check: the schedule may still disappear before confirmation.
        schedule = await self.schedule_lookup.get_by_id(appointment.schedule_id)
        if schedule is None:
            raise NotFoundException(f"Schedule with ID {appointment.schedule_id} not found")

        saved = await self.store.put(appointment)
        logger.info(
            "appointment_created",
            appointment_id=str(saved.id),
            insured_id=saved.insured_id,
            schedule_id=saved.schedule_id,
            country_code=saved.country_code.value,
        )

        message = RequestMessage(
            appointment_id=saved.id,
            insured_id=saved.insured_id,
            schedule_id=saved.schedule_id,
            country_code=saved.country_code,
            timestamp=saved.created_at,
        )
        try:
            await self.request_channel.publish(message)
        except MessagingException:
            logger.error(
                "appointment_orphaned_pending",
                appointment_id=str(saved.id),
                country_code=saved.country_code.value,
            )
            raise

        return saved

    async def complete_by_message(self, appointment_id: UUID) -> Appointment:
        """
        Mark an appointment completed after country confirmation.

        Safe to call any number of times for the same id.

        Args:
            appointment_id: Appointment to complete

        Returns:
            The appointment in its final state

        Raises:
            NotFoundException: If the store has never seen the id
        """
        appointment = await self.store.get_by_id(appointment_id)
        if appointment is None:
            raise NotFoundException(f"Appointment with ID {appointment_id} not found")

        now = datetime.now(UTC)
        if not appointment.mark_completed(now):
            self._log_terminal(appointment)
            return appointment

        updated = await self.store.update_status(
            appointment_id,
            AppointmentStatus.COMPLETED,
            now,
            expected_status=AppointmentStatus.PENDING,
        )
        if updated:
            logger.info("appointment_completed", appointment_id=str(appointment_id))
            return appointment

        # Lost the compare-and-set to a concurrent delivery; report what won.
        current = await self.store.get_by_id(appointment_id)
        if current is None:
            raise NotFoundException(f"Appointment with ID {appointment_id} not found")
        self._log_terminal(current)
        return current

    @staticmethod
    def _log_terminal(appointment: Appointment) -> None:
        if appointment.status == AppointmentStatus.COMPLETED:
            logger.info("appointment_already_completed", appointment_id=str(appointment.id))
        else:
            logger.warning(
                "appointment_completion_ignored",
                appointment_id=str(appointment.id),
                status=appointment.status.value,
            )

    async def list_by_insured_id(self, insured_id: str) -> AppointmentListResponse:
        """
        List an insured party's appointments, newest first.

        Raises:
            ValidationException: If the id is not 1 to 5 digits
        """
        normalized = normalize_insured_id(insured_id)
        if not is_valid_insured_id(normalized):
            raise ValidationException(
                "Invalid insured ID",
                errors=[{"field": "insured_id", "message": FIELD_MESSAGES["insured_id"]}],
            )

        items = await self.store.query_by_insured_id(normalized)
        return AppointmentListResponse(
            total=len(items),
            items=[item.model_dump() for item in items],
        )

    async def get_appointment(self, appointment_id: UUID) -> Appointment:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
        """
        appointment = await self.store.get_by_id(appointment_id)
        if appointment is None:
            raise NotFoundException("Appointment not found")
        return appointment
