from collections.abc import AsyncGenerator, Callable
from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from medsaga.core.security import create_access_token
from medsaga.dependencies import get_appointment_service, get_auth_service
from medsaga.main import app
from medsaga.messaging.channels import InMemoryCompletionChannel, InMemoryRequestChannel
from medsaga.messaging.consumer import StreamEntry
from medsaga.repositories.appointment_store import InMemoryAppointmentStore
from medsaga.repositories.country_store import InMemoryCountryAppointmentStore
from medsaga.repositories.credential_store import InMemoryCredentialStore
from medsaga.schemas.messages import CompletionMessage, RequestMessage
from medsaga.services.appointment_service import AppointmentService
from medsaga.services.auth_service import AuthService
from medsaga.services.completion_consumer import CompletionConsumer
from medsaga.services.country_worker import CountryConfirmationWorker
from medsaga.services.schedule_service import InMemoryScheduleLookup


@pytest.fixture
def appointment_store() -> InMemoryAppointmentStore:
    """Empty fast-path store."""
    return InMemoryAppointmentStore()


@pytest.fixture
def request_channel() -> InMemoryRequestChannel:
    return InMemoryRequestChannel()


@pytest.fixture
def completion_channel() -> InMemoryCompletionChannel:
    return InMemoryCompletionChannel()


@pytest.fixture
def schedule_lookup() -> InMemoryScheduleLookup:
    """Lookup holding the default schedules 100 and 101."""
    return InMemoryScheduleLookup()


@pytest.fixture
def credential_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def country_stores() -> dict[str, InMemoryCountryAppointmentStore]:
    """One system of record per supported country."""
    return {
        "PE": InMemoryCountryAppointmentStore("PE"),
        "CL": InMemoryCountryAppointmentStore("CL"),
    }


@pytest.fixture
def appointment_service(
    appointment_store: InMemoryAppointmentStore,
    request_channel: InMemoryRequestChannel,
    schedule_lookup: InMemoryScheduleLookup,
) -> AppointmentService:
    """Orchestrator wired to in-memory adapters."""
    return AppointmentService(appointment_store, request_channel, schedule_lookup)


@pytest.fixture
def pe_worker(
    country_stores: dict[str, InMemoryCountryAppointmentStore],
    completion_channel: InMemoryCompletionChannel,
    schedule_lookup: InMemoryScheduleLookup,
) -> CountryConfirmationWorker:
    """Confirmation worker for Peru."""
    return CountryConfirmationWorker(
        "PE", country_stores["PE"], completion_channel, schedule_lookup
    )


@pytest.fixture
def completion_consumer(appointment_service: AppointmentService) -> CompletionConsumer:
    return CompletionConsumer(appointment_service)


@pytest.fixture
def make_entry() -> Callable[..., StreamEntry]:
    """Build a stream entry the way the Redis channels write them."""
    counter = {"value": 0}

    def _make(message: RequestMessage | CompletionMessage | str, country_code: str = "PE"):
        counter["value"] += 1
        payload = message if isinstance(message, str) else message.to_json()
        return StreamEntry(
            entry_id=f"1700000000000-{counter['value']}",
            fields={"payload": payload, "countryCode": country_code},
        )

    return _make


@pytest_asyncio.fixture
async def client(
    appointment_service: AppointmentService,
    credential_store: InMemoryCredentialStore,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client backed by in-memory adapters."""
    app.dependency_overrides[get_appointment_service] = lambda: appointment_service
    app.dependency_overrides[get_auth_service] = lambda: AuthService(credential_store)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def insured_id() -> str:
    return "00123"


@pytest.fixture
def auth_headers(insured_id: str) -> dict:
    """Create authentication headers for the insured party under test."""
    token_data = {
        "sub": "5f0c6c2e-8a44-4f1e-9a8e-3c2f1b0d9e11",
        "email": "patient@example.com",
        "insured_id": insured_id,
    }
    token = create_access_token(data=token_data, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def sample_appointment_data() -> dict:
    """Sample appointment request for testing."""
    return {
        "insured_id": "123",
        "schedule_id": 100,
        "country_code": "PE",
    }
