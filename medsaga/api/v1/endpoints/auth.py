"""Authentication endpoints."""

from fastapi import APIRouter, status

from medsaga.dependencies import AuthServiceDep
from medsaga.schemas.auth import LoginRequest, LoginResponse, RegisterRequest, UserResponse

router = APIRouter()


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Authentication"],
    summary="Register an insured party",
)
async def register(data: RegisterRequest, service: AuthServiceDep) -> UserResponse:
    """
    Register credentials for an insured party.

    Raises:
        ConflictException: If the email or insured ID is already registered
    """
    return await service.register(data)


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    tags=["Authentication"],
    summary="Log in with email and password",
)
async def login(data: LoginRequest, service: AuthServiceDep) -> LoginResponse:
    """
    Exchange credentials for an access token.

    Raises:
        UnauthorizedException: If the credentials are invalid
    """
    return await service.login(data)
