"""
Saga worker entry point.

Usage:
    python -m medsaga.worker country PE
    python -m medsaga.worker completions
"""

import argparse
import asyncio
import signal
import sys

import structlog
from prometheus_client import start_http_server

from medsaga.config import settings
from medsaga.core.redis_client import close_redis_connection, get_redis_client
from medsaga.database import AsyncSessionLocal, dispose_engines, get_country_sessionmaker
from medsaga.messaging.channels import (
    RedisStreamCompletionChannel,
    RedisStreamRequestChannel,
    completion_stream_key,
    request_stream_key,
)
from medsaga.messaging.consumer import StreamConsumer
from medsaga.middleware.logging import configure_logging
from medsaga.repositories.appointment_store import SQLAppointmentStore
from medsaga.repositories.country_store import SQLCountryAppointmentStore
from medsaga.services.appointment_service import AppointmentService
from medsaga.services.completion_consumer import CompletionConsumer
from medsaga.services.country_worker import CountryConfirmationWorker
from medsaga.services.schedule_service import build_schedule_lookup

logger = structlog.get_logger()

COMPLETION_GROUP = "completion-consumer"


def country_group(country_code: str) -> str:
    """Consumer group shared by every worker of one country."""
    return f"country-worker-{country_code.upper()}"


def build_country_consumer(country_code: str) -> StreamConsumer:
    """
    Wire a country worker to its request stream.

    Raises:
        ValueError: If the country is not enabled
    """
    country_code = country_code.upper()
    if country_code not in settings.supported_countries:
        raise ValueError(f"Country {country_code} is not enabled")

    redis_client = get_redis_client()
    worker = CountryConfirmationWorker(
        country_code=country_code,
        store=SQLCountryAppointmentStore(country_code, get_country_sessionmaker(country_code)),
        completion_channel=RedisStreamCompletionChannel(redis_client),
        schedule_lookup=build_schedule_lookup(settings, redis_client),
    )
    return StreamConsumer(
        redis_client,
        stream=request_stream_key(country_code),
        group=country_group(country_code),
        handler=worker.handle_batch,
    )


def build_completion_consumer() -> StreamConsumer:
    """Wire the completion consumer to the completion stream."""
    redis_client = get_redis_client()
    service = AppointmentService(
        SQLAppointmentStore(AsyncSessionLocal),
        RedisStreamRequestChannel(redis_client),
        build_schedule_lookup(settings, redis_client),
    )
    consumer = CompletionConsumer(service)
    return StreamConsumer(
        redis_client,
        stream=completion_stream_key(),
        group=COMPLETION_GROUP,
        handler=consumer.handle_batch,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run an appointment saga worker")
    subparsers = parser.add_subparsers(dest="role", required=True)

    country = subparsers.add_parser("country", help="Confirm requests for one country")
    country.add_argument("country_code", help="Country code, e.g. PE")

    subparsers.add_parser("completions", help="Apply completion events")
    return parser.parse_args(argv)


async def run(consumer: StreamConsumer) -> None:
    """Run a consumer until SIGINT or SIGTERM, then release connections."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, consumer.stop)

    try:
        await consumer.run()
    finally:
        await dispose_engines()
        await close_redis_connection()
        logger.info("worker_connections_closed")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging(
        component="country_worker" if args.role == "country" else "completion_consumer"
    )

    try:
        if args.role == "country":
            consumer = build_country_consumer(args.country_code)
        else:
            consumer = build_completion_consumer()
    except ValueError as e:
        logger.error("worker_configuration_invalid", error=str(e))
        sys.exit(2)

    if settings.worker_metrics_port:
        start_http_server(settings.worker_metrics_port)
        logger.info("worker_metrics_exposed", port=settings.worker_metrics_port)

    logger.info("worker_starting", role=args.role, stream=consumer.stream, group=consumer.group)
    asyncio.run(run(consumer))


if __name__ == "__main__":
    main()
