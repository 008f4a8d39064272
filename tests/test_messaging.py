"""Tests for the Redis Streams channels and consumer loop."""

import json
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from medsaga.core.exceptions import MessagingException
from medsaga.messaging.channels import (
    RedisStreamCompletionChannel,
    RedisStreamRequestChannel,
    completion_stream_key,
    request_stream_key,
)
from medsaga.messaging.consumer import StreamConsumer, StreamEntry
from medsaga.schemas.messages import CompletionMessage, RequestMessage


def request_message(country_code: str = "PE") -> RequestMessage:
    return RequestMessage(
        appointment_id=uuid4(),
        insured_id="00123",
        schedule_id=100,
        country_code=country_code,
    )


def test_stream_keys() -> None:
    assert request_stream_key("pe", prefix="appointments") == "appointments:requests:PE"
    assert completion_stream_key(prefix="appointments") == "appointments:completions"


def test_message_wire_format_uses_camel_case() -> None:
    """Test that messages serialize with camelCase keys and a version."""
    message = request_message()
    body = json.loads(message.to_json())

    assert body["appointmentId"] == str(message.appointment_id)
    assert body["insuredId"] == "00123"
    assert body["scheduleId"] == 100
    assert body["countryCode"] == "PE"
    assert body["version"] == 1
    assert "timestamp" in body


def test_completion_message_has_fixed_status() -> None:
    message = CompletionMessage(
        appointment_id=uuid4(), insured_id="00123", schedule_id=100, country_code="CL"
    )
    assert json.loads(message.to_json())["status"] == "completed"


@pytest.mark.asyncio
async def test_request_channel_routes_by_country() -> None:
    """Test that a request lands on its country's stream with the country attribute."""
    redis_client = AsyncMock()
    redis_client.xadd.return_value = "1700000000000-0"
    channel = RedisStreamRequestChannel(redis_client, prefix="appointments", maxlen=1000)
    message = request_message("CL")

    entry_id = await channel.publish(message)

    assert entry_id == "1700000000000-0"
    redis_client.xadd.assert_awaited_once_with(
        "appointments:requests:CL",
        {"payload": message.to_json(), "countryCode": "CL"},
        maxlen=1000,
        approximate=True,
    )


@pytest.mark.asyncio
async def test_completion_channel_single_stream() -> None:
    redis_client = AsyncMock()
    redis_client.xadd.return_value = b"1700000000000-1"
    channel = RedisStreamCompletionChannel(redis_client, prefix="appointments")
    message = CompletionMessage(
        appointment_id=uuid4(), insured_id="00123", schedule_id=100, country_code="PE"
    )

    assert await channel.publish(message) == "1700000000000-1"
    assert redis_client.xadd.await_args.args[0] == "appointments:completions"


@pytest.mark.asyncio
async def test_publish_failure_raises_messaging_exception() -> None:
    redis_client = AsyncMock()
    redis_client.xadd.side_effect = RedisConnectionError("connection refused")
    channel = RedisStreamRequestChannel(redis_client)

    with pytest.raises(MessagingException):
        await channel.publish(request_message())


def consumer_for(redis_client, handler=None, **kwargs) -> StreamConsumer:
    return StreamConsumer(
        redis_client,
        stream="appointments:requests:PE",
        group="country-worker-PE",
        handler=handler or AsyncMock(),
        consumer_name="worker-1",
        count=10,
        block_ms=100,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_ensure_group_tolerates_existing_group() -> None:
    redis_client = AsyncMock()
    redis_client.xgroup_create.side_effect = ResponseError(
        "BUSYGROUP Consumer Group name already exists"
    )

    await consumer_for(redis_client).ensure_group()

    redis_client.xgroup_create.assert_awaited_once_with(
        name="appointments:requests:PE",
        groupname="country-worker-PE",
        id="0",
        mkstream=True,
    )


@pytest.mark.asyncio
async def test_ensure_group_raises_other_errors() -> None:
    redis_client = AsyncMock()
    redis_client.xgroup_create.side_effect = ResponseError("WRONGTYPE")

    with pytest.raises(ResponseError):
        await consumer_for(redis_client).ensure_group()


@pytest.mark.asyncio
async def test_read_batch_drains_pending_before_new() -> None:
    """Test that unacknowledged entries are read before new ones."""
    redis_client = AsyncMock()
    redis_client.xreadgroup.side_effect = [
        [["appointments:requests:PE", [("1-0", {"payload": "{}", "countryCode": "PE"})]]],
        [["appointments:requests:PE", []]],
        [["appointments:requests:PE", [(b"2-0", {b"payload": b"{}"})]]],
    ]
    consumer = consumer_for(redis_client)

    first = await consumer.read_batch()
    second = await consumer.read_batch()
    third = await consumer.read_batch()

    assert first == [StreamEntry("1-0", {"payload": "{}", "countryCode": "PE"})]
    assert second == []
    assert third == [StreamEntry("2-0", {"payload": "{}"})]

    calls = redis_client.xreadgroup.await_args_list
    assert [c.kwargs["streams"]["appointments:requests:PE"] for c in calls] == ["0", "0", ">"]
    assert calls[2].kwargs["block"] == 100


@pytest.mark.asyncio
async def test_run_once_acks_even_when_handler_fails() -> None:
    """Test that every entry is acknowledged after a single attempt."""
    redis_client = AsyncMock()
    redis_client.xreadgroup.return_value = [
        ["appointments:requests:PE", [("1-0", {"payload": "a"}), ("1-1", {"payload": "b"})]]
    ]
    handler = AsyncMock(side_effect=RuntimeError("boom"))
    consumer = consumer_for(redis_client, handler)

    with pytest.raises(RuntimeError):
        await consumer.run_once()

    redis_client.xack.assert_awaited_once_with(
        "appointments:requests:PE", "country-worker-PE", "1-0", "1-1"
    )


@pytest.mark.asyncio
async def test_run_once_without_entries_skips_handler() -> None:
    redis_client = AsyncMock()
    redis_client.xreadgroup.return_value = []
    handler = AsyncMock()

    assert await consumer_for(redis_client, handler).run_once() == 0
    handler.assert_not_called()
    redis_client.xack.assert_not_called()


@pytest.mark.asyncio
async def test_run_survives_redis_errors_until_stopped() -> None:
    """Test that the loop keeps going after a read failure and exits on stop."""
    redis_client = AsyncMock()
    consumer = consumer_for(redis_client, retry_delay=0)

    async def handler(entries):
        consumer.stop()

    consumer.handler = handler
    redis_client.xreadgroup.side_effect = [
        RedisConnectionError("connection reset"),
        [["appointments:requests:PE", [("3-0", {"payload": "{}"})]]],
    ]

    await consumer.run()

    assert redis_client.xreadgroup.await_count == 2
    redis_client.xack.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_backs_off_after_handler_failure() -> None:
    """Test that a failing batch waits retry_delay before the next read."""
    redis_client = AsyncMock()
    consumer = consumer_for(redis_client, retry_delay=0.5)
    calls = 0

    async def handler(entries):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise RuntimeError("handler crashed")
        consumer.stop()

    consumer.handler = handler
    redis_client.xreadgroup.return_value = [
        ["appointments:requests:PE", [("4-0", {"payload": "{}"})]]
    ]

    with patch("medsaga.messaging.consumer.asyncio.sleep", new_callable=AsyncMock) as sleep:
        await consumer.run()

    assert calls == 2
    sleep.assert_awaited_once_with(0.5)
    assert redis_client.xack.await_count == 2
