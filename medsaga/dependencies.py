"""FastAPI dependencies."""

from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from medsaga.config import settings
from medsaga.core.redis_client import get_redis_client
from medsaga.core.security import decode_access_token
from medsaga.database import AsyncSessionLocal
from medsaga.messaging.channels import RedisStreamRequestChannel, RequestChannel
from medsaga.repositories.appointment_store import AppointmentStore, SQLAppointmentStore
from medsaga.repositories.credential_store import CredentialStore, SQLCredentialStore
from medsaga.services.appointment_service import AppointmentService
from medsaga.services.auth_service import AuthService
from medsaga.services.schedule_service import ScheduleLookup, build_schedule_lookup

# Security
security = HTTPBearer()


def get_appointment_store() -> AppointmentStore:
    """Fast-path store backed by the primary database."""
    return SQLAppointmentStore(AsyncSessionLocal)


def get_request_channel() -> RequestChannel:
    """Request channel backed by Redis Streams."""
    return RedisStreamRequestChannel(get_redis_client())


def get_schedule_lookup() -> ScheduleLookup:
    """Schedule lookup selected by configuration."""
    return build_schedule_lookup(settings, get_redis_client())


def get_credential_store() -> CredentialStore:
    """Credential store backed by the primary database."""
    return SQLCredentialStore(AsyncSessionLocal)


def get_appointment_service(
    store: Annotated[AppointmentStore, Depends(get_appointment_store)],
    request_channel: Annotated[RequestChannel, Depends(get_request_channel)],
    schedule_lookup: Annotated[ScheduleLookup, Depends(get_schedule_lookup)],
) -> AppointmentService:
    """Assemble the saga orchestrator."""
    return AppointmentService(store, request_channel, schedule_lookup)


def get_auth_service(
    credential_store: Annotated[CredentialStore, Depends(get_credential_store)],
) -> AuthService:
    """Assemble the authentication service."""
    return AuthService(credential_store)


async def get_current_identity(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> dict[str, Any]:
    """
    Extract and validate the caller's identity from the JWT.

    Args:
        credentials: Bearer token credentials

    Returns:
        Token claims with ``sub``, ``email`` and ``insured_id``

    Raises:
        HTTPException: If token is invalid or expired
    """
    payload = decode_access_token(credentials.credentials)

    if payload is None or not isinstance(payload.get("insured_id"), str):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload


# Type aliases for dependency injection
AppointmentServiceDep = Annotated[AppointmentService, Depends(get_appointment_service)]
AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]
CurrentIdentity = Annotated[dict[str, Any], Depends(get_current_identity)]
