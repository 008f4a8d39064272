"""Authentication service for registration and login."""

import structlog

from medsaga.core.exceptions import ConflictException, UnauthorizedException
from medsaga.core.security import create_access_token, get_password_hash
from medsaga.repositories.credential_store import CredentialStore
from medsaga.schemas.auth import (
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    UserRecord,
    UserResponse,
)

logger = structlog.get_logger()


class AuthService:
    """Service for credential handling and token issuance."""

    def __init__(self, credential_store: CredentialStore):
        """Initialize service with a credential store."""
        self.credentials = credential_store

    async def register(self, data: RegisterRequest) -> UserResponse:
        """
        Register a new user.

        Raises:
            ConflictException: If the email or insured ID is already registered
        """
        if await self.credentials.find_by_email(data.email):
            raise ConflictException("User with this email already exists")
        if await self.credentials.find_by_insured_id(data.insured_id):
            raise ConflictException("User with this Insured ID already exists")

        user = await self.credentials.create(
            email=data.email,
            password_hash=get_password_hash(data.password),
            name=data.name,
            insured_id=data.insured_id,
            country_code=data.country_code.value,
        )
        logger.info("user_registered", user_id=str(user.id), insured_id=user.insured_id)
        return UserResponse.model_validate(user.model_dump())

    async def login(self, data: LoginRequest) -> LoginResponse:
        """
        Authenticate and issue an access token.

        Raises:
            UnauthorizedException: If the credentials are invalid
        """
        user = await self.credentials.authenticate(data.email, data.password)
        if user is None:
            logger.info("login_failed", email=data.email)
            raise UnauthorizedException("Invalid credentials")

        return LoginResponse(
            access_token=self.create_token(user),
            user=UserResponse.model_validate(user.model_dump()),
        )

    @staticmethod
    def create_token(user: UserRecord) -> str:
        """Issue an access token carrying the insured ID claim."""
        return create_access_token(
            {
                "sub": str(user.id),
                "email": user.email,
                "insured_id": user.insured_id,
            }
        )
