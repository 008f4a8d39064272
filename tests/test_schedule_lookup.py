"""Tests for schedule lookup adapters."""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import TimeoutError as RedisTimeoutError

from medsaga.config import Settings
from medsaga.core.exceptions import StorageException
from medsaga.schemas.schedules import Schedule
from medsaga.services.schedule_service import (
    InMemoryScheduleLookup,
    RedisScheduleLookup,
    build_schedule_lookup,
)


@pytest.mark.asyncio
async def test_default_schedules(schedule_lookup):
    schedule = await schedule_lookup.get_by_id(100)

    assert schedule.center_id == 4
    assert schedule.specialty_id == 3
    assert schedule.practitioner_id == 4
    assert await schedule_lookup.get_by_id(999) is None


def test_naive_schedule_date_is_utc() -> None:
    schedule = Schedule(
        schedule_id=1, center_id=1, specialty_id=1, practitioner_id=1, date="2027-01-01T10:00:00"
    )
    assert schedule.date == datetime(2027, 1, 1, 10, 0, tzinfo=UTC)


def test_schedule_validity() -> None:
    now = datetime(2026, 1, 1, tzinfo=UTC)
    future = Schedule(
        schedule_id=1, center_id=1, specialty_id=1, practitioner_id=1, date="2027-01-01T10:00:00Z"
    )
    past = future.model_copy(update={"date": datetime(2025, 1, 1, tzinfo=UTC)})

    assert future.is_valid(now) is True
    assert past.is_valid(now) is False


@pytest.mark.asyncio
async def test_redis_lookup_parses_document():
    redis_client = AsyncMock()
    redis_client.get.return_value = json.dumps(
        {
            "schedule_id": 7,
            "center_id": 2,
            "specialty_id": 5,
            "practitioner_id": 9,
            "date": "2027-02-01T09:00:00Z",
        }
    )

    schedule = await RedisScheduleLookup(redis_client).get_by_id(7)

    redis_client.get.assert_awaited_once_with("schedule:7")
    assert schedule.practitioner_id == 9


@pytest.mark.asyncio
async def test_redis_lookup_missing_and_invalid_documents():
    redis_client = AsyncMock()
    redis_client.get.side_effect = [None, "{not json", json.dumps({"schedule_id": 7})]
    lookup = RedisScheduleLookup(redis_client)

    assert await lookup.get_by_id(7) is None
    assert await lookup.get_by_id(7) is None
    assert await lookup.get_by_id(7) is None


@pytest.mark.asyncio
async def test_redis_lookup_unreachable():
    redis_client = AsyncMock()
    redis_client.get.side_effect = RedisTimeoutError("timed out")

    with pytest.raises(StorageException):
        await RedisScheduleLookup(redis_client).get_by_id(7)


def test_build_schedule_lookup() -> None:
    memory = Settings(SCHEDULE_BACKEND="memory")
    redis_settings = Settings(SCHEDULE_BACKEND="redis")

    assert isinstance(build_schedule_lookup(memory), InMemoryScheduleLookup)
    assert isinstance(build_schedule_lookup(redis_settings, AsyncMock()), RedisScheduleLookup)
    with pytest.raises(ValueError):
        build_schedule_lookup(redis_settings)
    with pytest.raises(ValueError):
        build_schedule_lookup(Settings(SCHEDULE_BACKEND="dynamo"))
