"""Tests for the country confirmation worker."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from prometheus_client import REGISTRY

from medsaga.core.exceptions import MessagingException, StorageException
from medsaga.schemas.messages import RequestMessage
from medsaga.services.country_worker import CountryConfirmationWorker, MessageOutcome


def request(schedule_id: int = 100, country_code: str = "PE", **overrides) -> RequestMessage:
    data = {
        "appointment_id": uuid4(),
        "insured_id": "00123",
        "schedule_id": schedule_id,
        "country_code": country_code,
        "timestamp": datetime(2026, 5, 4, 10, 0, tzinfo=UTC),
    }
    data.update(overrides)
    return RequestMessage(**data)


def counter_value(country: str, outcome: str) -> float:
    labels = {"component": "country_worker", "country": country, "outcome": outcome}
    return REGISTRY.get_sample_value("saga_messages_total", labels) or 0.0


@pytest.mark.asyncio
async def test_confirms_and_publishes(pe_worker, country_stores, completion_channel):
    """Test that a resolvable request is stored, then announced."""
    message = request()

    outcome = await pe_worker.process_message(message)

    assert outcome == MessageOutcome.CONFIRMED
    records = await country_stores["PE"].query_by_insured_id("00123")
    assert len(records) == 1
    record = records[0]
    assert record.id == message.appointment_id
    assert record.status == "confirmed"
    assert (record.center_id, record.specialty_id, record.practitioner_id) == (4, 3, 4)
    assert record.appointment_date == datetime(2027, 9, 30, 12, 30, tzinfo=UTC)
    assert record.created_at == message.timestamp

    completions = completion_channel.drain()
    assert len(completions) == 1
    assert completions[0].appointment_id == message.appointment_id
    assert completions[0].status == "completed"


@pytest.mark.asyncio
async def test_redelivery_keeps_one_record(pe_worker, country_stores, completion_channel):
    """Test that the same request delivered twice yields a single, refreshed row."""
    message = request()
    first_seen = datetime(2026, 5, 4, 10, 0, 5, tzinfo=UTC)
    second_seen = datetime(2026, 5, 4, 10, 7, 0, tzinfo=UTC)

    with patch("medsaga.services.country_worker.datetime") as clock:
        clock.now.return_value = first_seen
        await pe_worker.process_message(message)
        clock.now.return_value = second_seen
        await pe_worker.process_message(message)

    assert len(country_stores["PE"]) == 1
    (record,) = await country_stores["PE"].query_by_insured_id("00123")
    assert record.status == "confirmed"
    assert record.updated_at == second_seen
    assert record.created_at == message.timestamp
    assert len(completion_channel.drain()) == 2


@pytest.mark.asyncio
async def test_unknown_schedule_is_dropped(pe_worker, country_stores, completion_channel):
    """Test that an unresolved schedule writes nothing and emits nothing."""
    outcome = await pe_worker.process_message(request(schedule_id=999))

    assert outcome == MessageOutcome.SCHEDULE_NOT_FOUND
    assert len(country_stores["PE"]) == 0
    assert completion_channel.messages == []


@pytest.mark.asyncio
async def test_other_country_is_ignored(pe_worker, country_stores, completion_channel):
    outcome = await pe_worker.process_message(request(country_code="CL"))

    assert outcome == MessageOutcome.WRONG_COUNTRY
    assert len(country_stores["PE"]) == 0
    assert completion_channel.messages == []


@pytest.mark.asyncio
async def test_store_failure_skips_publish(completion_channel, schedule_lookup):
    """Test that nothing is announced when the write fails."""
    store = AsyncMock()
    store.upsert.side_effect = StorageException("Country store unavailable")
    worker = CountryConfirmationWorker("PE", store, completion_channel, schedule_lookup)

    outcome = await worker.process_message(request())

    assert outcome == MessageOutcome.STORE_FAILED
    assert completion_channel.messages == []


@pytest.mark.asyncio
async def test_publish_failure_after_write(country_stores, schedule_lookup):
    channel = AsyncMock()
    channel.publish.side_effect = MessagingException("Could not publish")
    worker = CountryConfirmationWorker("PE", country_stores["PE"], channel, schedule_lookup)

    outcome = await worker.process_message(request())

    assert outcome == MessageOutcome.PUBLISH_FAILED
    assert len(country_stores["PE"]) == 1


@pytest.mark.asyncio
async def test_lookup_failure(country_stores, completion_channel):
    lookup = AsyncMock()
    lookup.get_by_id.side_effect = StorageException("Schedule lookup unavailable")
    worker = CountryConfirmationWorker("PE", country_stores["PE"], completion_channel, lookup)

    assert await worker.process_message(request()) == MessageOutcome.LOOKUP_FAILED
    assert len(country_stores["PE"]) == 0


@pytest.mark.asyncio
async def test_batch_isolates_failures(pe_worker, country_stores, completion_channel, make_entry):
    """Test that bad messages do not stop their siblings."""
    good = request()
    later = request(schedule_id=101)
    entries = [
        make_entry("not json"),
        make_entry(request(schedule_id=999)),
        make_entry(good),
        make_entry('{"appointmentId": "abc"}'),
        make_entry(later),
    ]

    result = await pe_worker.handle_batch(entries)

    assert result.confirmed == 2
    assert result.dropped == 3
    assert result.outcomes == [
        MessageOutcome.MALFORMED,
        MessageOutcome.SCHEDULE_NOT_FOUND,
        MessageOutcome.CONFIRMED,
        MessageOutcome.MALFORMED,
        MessageOutcome.CONFIRMED,
    ]
    assert len(country_stores["PE"]) == 2
    assert [m.appointment_id for m in completion_channel.drain()] == [
        good.appointment_id,
        later.appointment_id,
    ]


@pytest.mark.asyncio
async def test_batch_survives_unexpected_error(completion_channel, schedule_lookup, make_entry):
    """Test that an unexpected crash is contained to its own message."""
    store = AsyncMock()
    store.upsert.side_effect = [RuntimeError("boom"), None]
    worker = CountryConfirmationWorker("PE", store, completion_channel, schedule_lookup)

    result = await worker.handle_batch([make_entry(request()), make_entry(request())])

    assert result.outcomes == [MessageOutcome.ERROR, MessageOutcome.CONFIRMED]
    assert len(completion_channel.messages) == 1


@pytest.mark.asyncio
async def test_batch_records_metrics(pe_worker, make_entry):
    before = counter_value("PE", "schedule_not_found")

    await pe_worker.handle_batch([make_entry(request(schedule_id=999))])

    assert counter_value("PE", "schedule_not_found") == before + 1
