"""Request and completion channels.

The request channel is partitioned by country: each country has its own
Redis stream, and every entry also carries a ``countryCode`` attribute so a
subscriber can filter on it. The completion channel is a single stream with
one consumer group. Both are at-least-once.
"""

from collections import defaultdict
from typing import Protocol, runtime_checkable

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from medsaga.config import settings
from medsaga.core.exceptions import MessagingException
from medsaga.schemas.messages import CompletionMessage, RequestMessage

logger = structlog.get_logger()

PAYLOAD_FIELD = "payload"
COUNTRY_ATTRIBUTE = "countryCode"


def request_stream_key(country_code: str, prefix: str | None = None) -> str:
    """Stream carrying appointment requests for one country."""
    return f"{prefix or settings.stream_prefix}:requests:{country_code.upper()}"


def completion_stream_key(prefix: str | None = None) -> str:
    """Stream carrying completion events."""
    return f"{prefix or settings.stream_prefix}:completions"


@runtime_checkable
class RequestChannel(Protocol):
    """Fan-out of new appointment requests, routed by country."""

    async def publish(self, message: RequestMessage) -> str:
        """Publish a request. Raises MessagingException on failure."""
        ...


@runtime_checkable
class CompletionChannel(Protocol):
    """Completion events flowing back to the fast-path side."""

    async def publish(self, message: CompletionMessage) -> str:
        """Publish a completion. Raises MessagingException on failure."""
        ...


class _RedisStreamPublisher:
    def __init__(
        self,
        redis_client: redis.Redis,
        prefix: str | None = None,
        maxlen: int | None = None,
    ):
        self.redis = redis_client
        self.prefix = prefix or settings.stream_prefix
        self.maxlen = maxlen or settings.stream_maxlen

    async def _xadd(self, key: str, fields: dict[str, str]) -> str:
        try:
            entry_id = await self.redis.xadd(
                key,
                fields,
                maxlen=self.maxlen,
                approximate=True,
            )
        except RedisError as e:
            logger.error("stream_publish_failed", stream=key, error=str(e))
            raise MessagingException(f"Could not publish to {key}") from e
        return entry_id.decode() if isinstance(entry_id, bytes) else str(entry_id)


class RedisStreamRequestChannel(_RedisStreamPublisher):
    """Request channel on Redis Streams, one stream per country."""

    async def publish(self, message: RequestMessage) -> str:
        """Append the request to its country's stream."""
        country_code = message.country_code.value
        key = request_stream_key(country_code, self.prefix)
        entry_id = await self._xadd(
            key,
            {PAYLOAD_FIELD: message.to_json(), COUNTRY_ATTRIBUTE: country_code},
        )
        logger.info(
            "appointment_request_published",
            appointment_id=str(message.appointment_id),
            country_code=country_code,
            entry_id=entry_id,
        )
        return entry_id


class RedisStreamCompletionChannel(_RedisStreamPublisher):
    """Completion channel on a single Redis stream."""

    async def publish(self, message: CompletionMessage) -> str:
        """Append the completion event."""
        key = completion_stream_key(self.prefix)
        entry_id = await self._xadd(
            key,
            {PAYLOAD_FIELD: message.to_json(), COUNTRY_ATTRIBUTE: message.country_code.value},
        )
        logger.info(
            "appointment_completion_published",
            appointment_id=str(message.appointment_id),
            country_code=message.country_code.value,
            entry_id=entry_id,
        )
        return entry_id


class InMemoryRequestChannel:
    """Request channel that keeps published messages per country."""

    def __init__(self) -> None:
        """Initialize empty partitions."""
        self.partitions: dict[str, list[RequestMessage]] = defaultdict(list)

    async def publish(self, message: RequestMessage) -> str:
        """Append to the country's partition."""
        partition = self.partitions[message.country_code.value]
        partition.append(message)
        return f"{message.country_code.value}-{len(partition)}"

    def drain(self, country_code: str) -> list[RequestMessage]:
        """Remove and return everything published for a country."""
        return self.partitions.pop(country_code, [])


class InMemoryCompletionChannel:
    """Completion channel that keeps published messages in order."""

    def __init__(self) -> None:
        """Initialize an empty channel."""
        self.messages: list[CompletionMessage] = []

    async def publish(self, message: CompletionMessage) -> str:
        """Append the completion."""
        self.messages.append(message)
        return str(len(self.messages))

    def drain(self) -> list[CompletionMessage]:
        """Remove and return everything published so far."""
        messages, self.messages = self.messages, []
        return messages
