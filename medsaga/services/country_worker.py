"""Country confirmation worker.

Each supported country runs its own worker against its own request stream
and its own system of record. A message goes through
``received -> schedule-resolved -> persisted -> event-emitted``; nothing is
kept between messages. A message that fails at any step is logged and
abandoned, it is never retried here.
"""

from datetime import UTC, datetime
from enum import Enum

import structlog
from pydantic import BaseModel, ValidationError

from medsaga.core.exceptions import AppException
from medsaga.core.metrics import record_message
from medsaga.messaging.channels import CompletionChannel
from medsaga.messaging.consumer import StreamEntry
from medsaga.repositories.country_store import CountryAppointmentStore
from medsaga.schemas.country_appointments import CONFIRMED_STATUS, CountryAppointmentRecord
from medsaga.schemas.messages import CompletionMessage, RequestMessage
from medsaga.services.schedule_service import ScheduleLookup

logger = structlog.get_logger()

COMPONENT = "country_worker"


class MessageOutcome(str, Enum):
    """How far a single request message got."""

    CONFIRMED = "confirmed"
    MALFORMED = "malformed"
    WRONG_COUNTRY = "wrong_country"
    SCHEDULE_NOT_FOUND = "schedule_not_found"
    LOOKUP_FAILED = "lookup_failed"
    STORE_FAILED = "store_failed"
    PUBLISH_FAILED = "publish_failed"
    ERROR = "error"


class BatchResult(BaseModel):
    """Per-batch tally."""

    confirmed: int = 0
    dropped: int = 0
    outcomes: list[MessageOutcome] = []


class CountryConfirmationWorker:
    """Confirms appointment requests for one country."""

    def __init__(
        self,
        country_code: str,
        store: CountryAppointmentStore,
        completion_channel: CompletionChannel,
        schedule_lookup: ScheduleLookup,
    ):
        """Initialize worker for one country."""
        self.country_code = country_code.upper()
        self.store = store
        self.completion_channel = completion_channel
        self.schedule_lookup = schedule_lookup

    async def handle_batch(self, entries: list[StreamEntry]) -> BatchResult:
        """
        Process a batch, isolating each message from its siblings.

        Args:
            entries: Stream entries holding request messages

        Returns:
            Outcome tally for the batch
        """
        result = BatchResult()
        for entry in entries:
            try:
                outcome = await self.handle_entry(entry)
            except Exception:
                logger.exception(
                    "appointment_request_failed",
                    country_code=self.country_code,
                    entry_id=entry.entry_id,
                )
                outcome = MessageOutcome.ERROR
            result.outcomes.append(outcome)
            if outcome == MessageOutcome.CONFIRMED:
                result.confirmed += 1
            else:
                result.dropped += 1
            record_message(COMPONENT, self.country_code, outcome.value)
        return result

    async def handle_entry(self, entry: StreamEntry) -> MessageOutcome:
        """Parse one entry and process it."""
        try:
            message = RequestMessage.from_json(entry.payload or "")
        except ValidationError as e:
            logger.error(
                "appointment_request_malformed",
                country_code=self.country_code,
                entry_id=entry.entry_id,
                error=str(e),
            )
            return MessageOutcome.MALFORMED
        return await self.process_message(message)

    async def process_message(self, message: RequestMessage) -> MessageOutcome:
        """
        Confirm one appointment request.

        Args:
            message: Request addressed to this country

        Returns:
            Outcome of the attempt; failures are logged, never raised
        """
        log = logger.bind(
            appointment_id=str(message.appointment_id),
            country_code=self.country_code,
            schedule_id=message.schedule_id,
        )

        if message.country_code.value != self.country_code:
            log.warning(
                "appointment_request_wrong_country",
                message_country=message.country_code.value,
            )
            return MessageOutcome.WRONG_COUNTRY

        try:
            schedule = await self.schedule_lookup.get_by_id(message.schedule_id)
        except AppException as e:
            log.error("schedule_lookup_failed", error=e.message)
            return MessageOutcome.LOOKUP_FAILED
        if schedule is None:
            # Dropped on purpose: the fast-path record stays pending.
            log.error("appointment_schedule_not_found")
            return MessageOutcome.SCHEDULE_NOT_FOUND

        record = CountryAppointmentRecord(
            id=message.appointment_id,
            insured_id=message.insured_id,
            schedule_id=message.schedule_id,
            center_id=schedule.center_id,
            specialty_id=schedule.specialty_id,
            practitioner_id=schedule.practitioner_id,
            appointment_date=schedule.date,
            country_code=message.country_code,
            status=CONFIRMED_STATUS,
            created_at=message.timestamp,
            updated_at=datetime.now(UTC),
        )
        try:
            await self.store.upsert(record)
        except AppException as e:
            log.error("appointment_confirmation_not_saved", error=e.message)
            return MessageOutcome.STORE_FAILED
        log.info("appointment_confirmed")

        completion = CompletionMessage(
            appointment_id=message.appointment_id,
            insured_id=message.insured_id,
            schedule_id=message.schedule_id,
            country_code=message.country_code,
        )
        try:
            await self.completion_channel.publish(completion)
        except AppException as e:
            log.error("appointment_completion_not_published", error=e.message)
            return MessageOutcome.PUBLISH_FAILED

        return MessageOutcome.CONFIRMED
