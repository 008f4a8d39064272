"""Authentication schemas."""

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from medsaga.schemas.appointments import CountryCode

PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Za-z])(?=.*\d).{8,}$")


class RegisterRequest(BaseModel):
    """Registration request schema."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=72)
    name: str = Field(..., min_length=1, max_length=200)
    insured_id: str = Field(..., pattern=r"^[0-9]{5}$")
    country_code: CountryCode

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, v: str) -> str:
        """Require at least one letter and one digit."""
        if not PASSWORD_PATTERN.match(v):
            raise ValueError("Password must contain at least one letter and one number")
        return v


class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class UserRecord(BaseModel):
    """User as stored by the credential store."""

    id: UUID
    email: str
    name: str
    insured_id: str
    country_code: CountryCode
    password_hash: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserResponse(BaseModel):
    """User response schema."""

    id: UUID
    email: str
    name: str
    insured_id: str
    country_code: CountryCode
    created_at: datetime

    model_config = {"from_attributes": True}


class LoginResponse(BaseModel):
    """Login response with token and user info."""

    access_token: str
    token_type: str = "bearer"
    user: UserResponse
