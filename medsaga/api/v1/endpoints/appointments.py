"""Appointment endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from medsaga.core.exceptions import ForbiddenException
from medsaga.dependencies import AppointmentServiceDep, CurrentIdentity
from medsaga.domain.appointment import is_valid_insured_id, normalize_insured_id
from medsaga.schemas.appointments import (
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
)

router = APIRouter()


def _ensure_owner(identity: dict, insured_id: str | int) -> None:
    # Malformed ids fall through to validation, which reports every field.
    normalized = normalize_insured_id(insured_id)
    if is_valid_insured_id(normalized) and identity["insured_id"] != normalized:
        raise ForbiddenException("Cannot access appointments of a different insured party")


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Request a new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    identity: CurrentIdentity,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Request an appointment for the authenticated insured party.

    The appointment is returned as ``pending``; country confirmation happens
    asynchronously and shows up later in the list endpoint.

    Args:
        data: Appointment request
        identity: Authenticated caller
        service: Saga orchestrator

    Returns:
        Created appointment
    """
    _ensure_owner(identity, data.insured_id)
    appointment = await service.create(data.insured_id, data.schedule_id, data.country_code)
    return AppointmentResponse.model_validate(appointment.model_dump())


@router.get(
    "/detail/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    identity: CurrentIdentity,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """Get a single appointment owned by the caller."""
    appointment = await service.get_appointment(appointment_id)
    _ensure_owner(identity, appointment.insured_id)
    return AppointmentResponse.model_validate(appointment.model_dump())


@router.get(
    "/{insured_id}",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments of an insured party",
)
async def list_appointments(
    insured_id: str,
    identity: CurrentIdentity,
    service: AppointmentServiceDep,
) -> AppointmentListResponse:
    """
    List appointments for an insured party, newest first.

    Args:
        insured_id: Insured party id, 1 to 5 digits
        identity: Authenticated caller
        service: Saga orchestrator

    Returns:
        Appointments and their count
    """
    _ensure_owner(identity, insured_id)
    return await service.list_by_insured_id(insured_id)
