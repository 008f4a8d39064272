"""Schedule lookup: read-only scheduleId -> Schedule resolution."""

import json
from typing import Protocol, runtime_checkable

import redis.asyncio as redis
import structlog
from pydantic import ValidationError
from redis.exceptions import RedisError

from medsaga.config import Settings
from medsaga.core.exceptions import StorageException
from medsaga.schemas.schedules import Schedule

logger = structlog.get_logger()

# Slots available out of the box in local and test environments
DEFAULT_SCHEDULES = (
    Schedule(
        schedule_id=100,
        center_id=4,
        specialty_id=3,
        practitioner_id=4,
        date="2027-09-30T12:30:00Z",
    ),
    Schedule(
        schedule_id=101,
        center_id=1,
        specialty_id=2,
        practitioner_id=3,
        date="2027-10-01T14:00:00Z",
    ),
)


@runtime_checkable
class ScheduleLookup(Protocol):
    """Resolve a schedule id. Must be safe to call concurrently."""

    async def get_by_id(self, schedule_id: int) -> Schedule | None:
        """Return the schedule, or None when it does not exist."""
        ...


class InMemoryScheduleLookup:
    """Lookup over a fixed set of schedules."""

    def __init__(self, schedules=DEFAULT_SCHEDULES):
        """Initialize with the given schedules."""
        self._schedules = {schedule.schedule_id: schedule for schedule in schedules}

    async def get_by_id(self, schedule_id: int) -> Schedule | None:
        return self._schedules.get(schedule_id)


class RedisScheduleLookup:
    """Lookup over JSON documents stored at ``schedule:{id}``."""

    KEY_TEMPLATE = "schedule:{schedule_id}"

    def __init__(self, redis_client: redis.Redis):
        """Initialize lookup with a Redis client."""
        self.redis = redis_client

    async def get_by_id(self, schedule_id: int) -> Schedule | None:
        """
        Fetch and parse a schedule document.

        Args:
            schedule_id: Schedule to resolve

        Returns:
            Parsed schedule, or None when missing or unreadable

        Raises:
            StorageException: If Redis is unreachable
        """
        key = self.KEY_TEMPLATE.format(schedule_id=schedule_id)
        try:
            raw = await self.redis.get(key)
        except RedisError as e:
            raise StorageException("Schedule lookup unavailable") from e

        if raw is None:
            return None

        try:
            return Schedule.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning("schedule_document_invalid", schedule_id=schedule_id, error=str(e))
            return None


def build_schedule_lookup(
    settings: Settings,
    redis_client: redis.Redis | None = None,
) -> ScheduleLookup:
    """Pick the lookup adapter named by ``SCHEDULE_BACKEND``."""
    backend = settings.schedule_backend.lower()
    if backend == "redis":
        if redis_client is None:
            raise ValueError("A Redis client is required for the redis schedule backend")
        return RedisScheduleLookup(redis_client)
    if backend == "memory":
        return InMemoryScheduleLookup()
    raise ValueError(f"Unknown schedule backend: {settings.schedule_backend}")
