"""Message schemas carried on the request and completion channels.

Both messages are immutable facts that may be delivered more than once.
On the wire they use camelCase keys and carry a schema ``version`` so that
publishers and consumers agree on an explicit field set.
"""

from datetime import UTC, datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from medsaga.schemas.appointments import CountryCode

MESSAGE_VERSION = 1


class _SagaMessage(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    version: Literal[1] = MESSAGE_VERSION
    appointment_id: UUID
    insured_id: str
    schedule_id: int
    country_code: CountryCode
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_json(self) -> str:
        """Serialize with wire (camelCase) keys."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes):
        """Parse a wire payload, raising pydantic.ValidationError when malformed."""
        return cls.model_validate_json(raw)


class RequestMessage(_SagaMessage):
    """New appointment request, routed to the worker of ``country_code``."""


class CompletionMessage(_SagaMessage):
    """Country-side confirmation, consumed to complete the fast-path record."""

    status: Literal["completed"] = "completed"
