"""Completion consumer: fans completion events into the orchestrator."""

import json
from enum import Enum
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from medsaga.core.exceptions import AppException, NotFoundException
from medsaga.core.metrics import record_message
from medsaga.messaging.consumer import StreamEntry
from medsaga.schemas.messages import CompletionMessage
from medsaga.services.appointment_service import AppointmentService

logger = structlog.get_logger()

COMPONENT = "completion_consumer"


class CompletionOutcome(str, Enum):
    """Result of handling one completion event."""

    COMPLETED = "completed"
    MALFORMED = "malformed"
    UNKNOWN_APPOINTMENT = "unknown_appointment"
    FAILED = "failed"


class CompletionBatchResult(BaseModel):
    """Per-batch tally."""

    completed: int = 0
    dropped: int = 0
    outcomes: list[CompletionOutcome] = []


def _appointment_id_from(entry: StreamEntry) -> tuple[UUID | None, str]:
    """
    Extract the appointment id and its country label from an entry.

    Only ``appointmentId`` is required; a payload that fails the full schema
    but still names a valid id is accepted.
    """
    country = entry.fields.get("countryCode", "unknown")
    try:
        message = CompletionMessage.from_json(entry.payload or "")
        return message.appointment_id, message.country_code.value
    except ValidationError:
        pass

    try:
        body = json.loads(entry.payload or "")
        return UUID(str(body["appointmentId"])), country
    except (ValueError, TypeError, KeyError):
        return None, country


class CompletionConsumer:
    """Applies completion events to the fast-path store, idempotently."""

    def __init__(self, service: AppointmentService):
        """Initialize consumer with the orchestrator."""
        self.service = service

    async def handle_batch(self, entries: list[StreamEntry]) -> CompletionBatchResult:
        """
        Complete every appointment referenced by the batch.

        Duplicate or reordered events are accepted silently; anything that
        fails is logged and dropped after this single attempt.
        """
        result = CompletionBatchResult()
        for entry in entries:
            appointment_id, country = _appointment_id_from(entry)
            try:
                outcome = await self.handle(entry.entry_id, appointment_id)
            except Exception:
                logger.exception(
                    "appointment_completion_crashed",
                    entry_id=entry.entry_id,
                    appointment_id=str(appointment_id),
                )
                outcome = CompletionOutcome.FAILED
            result.outcomes.append(outcome)
            if outcome == CompletionOutcome.COMPLETED:
                result.completed += 1
            else:
                result.dropped += 1
            record_message(COMPONENT, country, outcome.value)
        return result

    async def handle(self, entry_id: str, appointment_id: UUID | None) -> CompletionOutcome:
        """Complete one appointment."""
        if appointment_id is None:
            logger.error("appointment_completion_malformed", entry_id=entry_id)
            return CompletionOutcome.MALFORMED

        try:
            await self.service.complete_by_message(appointment_id)
        except NotFoundException:
            logger.warning("appointment_completion_unknown", appointment_id=str(appointment_id))
            return CompletionOutcome.UNKNOWN_APPOINTMENT
        except AppException as e:
            logger.error(
                "appointment_completion_failed",
                appointment_id=str(appointment_id),
                error=e.message,
            )
            return CompletionOutcome.FAILED

        return CompletionOutcome.COMPLETED
