"""Redis Streams consumer loop shared by the saga workers."""

import asyncio
import os
import socket
from collections.abc import Awaitable, Callable
from typing import Any, NamedTuple

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError, ResponseError

from medsaga.config import settings

logger = structlog.get_logger()


class StreamEntry(NamedTuple):
    """One entry read from a stream."""

    entry_id: str
    fields: dict[str, str]

    @property
    def payload(self) -> str | None:
        return self.fields.get("payload")


BatchHandler = Callable[[list[StreamEntry]], Awaitable[Any]]


def _decode(value: str | bytes) -> str:
    return value.decode() if isinstance(value, bytes) else value


def default_consumer_name(group: str) -> str:
    """Unique consumer name within a group."""
    return f"{group}-{socket.gethostname()}-{os.getpid()}"


class StreamConsumer:
    """
    Read a stream through a consumer group and hand batches to a handler.

    Entries already delivered to this consumer but never acknowledged (for
    example after a crash) are drained first, then new entries are read.
    Every entry is acknowledged after a single handling attempt, whatever
    its outcome.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        stream: str,
        group: str,
        handler: BatchHandler,
        consumer_name: str | None = None,
        count: int | None = None,
        block_ms: int | None = None,
        retry_delay: float = 1.0,
    ):
        """Initialize consumer for one stream and group."""
        self.redis = redis_client
        self.stream = stream
        self.group = group
        self.handler = handler
        self.consumer_name = consumer_name or default_consumer_name(group)
        self.count = count or settings.stream_read_count
        self.block_ms = block_ms if block_ms is not None else settings.stream_block_ms
        self.retry_delay = retry_delay
        self._draining_pending = True
        self._running = False

    async def ensure_group(self) -> None:
        """Create the consumer group, reading from the start of the stream."""
        try:
            await self.redis.xgroup_create(
                name=self.stream,
                groupname=self.group,
                id="0",
                mkstream=True,
            )
            logger.info("consumer_group_created", stream=self.stream, group=self.group)
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def read_batch(self) -> list[StreamEntry]:
        """Read pending entries first, then new ones."""
        stream_id = "0" if self._draining_pending else ">"
        response = await self.redis.xreadgroup(
            groupname=self.group,
            consumername=self.consumer_name,
            streams={self.stream: stream_id},
            count=self.count,
            block=None if self._draining_pending else self.block_ms,
        )

        entries: list[StreamEntry] = []
        for _stream, messages in response or []:
            for entry_id, fields in messages:
                entries.append(
                    StreamEntry(
                        entry_id=_decode(entry_id),
                        fields={_decode(k): _decode(v) for k, v in (fields or {}).items()},
                    )
                )

        if self._draining_pending and not entries:
            self._draining_pending = False
        return entries

    async def run_once(self) -> int:
        """
        Read, handle and acknowledge one batch.

        Returns:
            Number of entries handled
        """
        entries = await self.read_batch()
        if not entries:
            return 0

        try:
            await self.handler(entries)
        finally:
            await self.redis.xack(self.stream, self.group, *[e.entry_id for e in entries])
        return len(entries)

    async def run(self) -> None:
        """Consume until stopped."""
        await self.ensure_group()
        self._running = True
        logger.info(
            "stream_consumer_started",
            stream=self.stream,
            group=self.group,
            consumer=self.consumer_name,
        )

        while self._running:
            try:
                await self.run_once()
            except RedisError as e:
                logger.error("stream_read_failed", stream=self.stream, error=str(e))
                await asyncio.sleep(self.retry_delay)
            except Exception:
                logger.exception("stream_batch_failed", stream=self.stream)
                await asyncio.sleep(self.retry_delay)

        logger.info("stream_consumer_stopped", stream=self.stream, group=self.group)

    def stop(self) -> None:
        """Ask the loop to exit after the current batch."""
        self._running = False
