"""Prometheus metrics for the asynchronous saga stages."""

from prometheus_client import Counter

saga_messages_total = Counter(
    "saga_messages_total",
    "Saga messages handled by the asynchronous stages",
    ["component", "country", "outcome"],
)


def record_message(component: str, country: str, outcome: str) -> None:
    """Count one handled message."""
    saga_messages_total.labels(component=component, country=country, outcome=outcome).inc()
