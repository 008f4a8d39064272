"""Credential store used by registration and login."""

import asyncio
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable
from uuid import UUID, uuid4

from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medsaga.core.exceptions import ConflictException, StorageException
from medsaga.core.security import verify_password
from medsaga.database import session_scope
from medsaga.models.users import users
from medsaga.schemas.auth import UserRecord


@runtime_checkable
class CredentialStore(Protocol):
    """Credentials keyed by email and by insured id."""

    async def create(
        self,
        email: str,
        password_hash: str,
        name: str,
        insured_id: str,
        country_code: str,
    ) -> UserRecord:
        """Create a user. Raises ConflictException on duplicate email or insured id."""
        ...

    async def find_by_email(self, email: str) -> UserRecord | None:
        """Find a user by email."""
        ...

    async def find_by_insured_id(self, insured_id: str) -> UserRecord | None:
        """Find a user by insured id."""
        ...

    async def authenticate(self, email: str, password: str) -> UserRecord | None:
        """Return the user when the plaintext password matches, else None."""
        ...


class SQLCredentialStore:
    """PostgreSQL adapter for the users table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize store with a session factory."""
        self.session_factory = session_factory

    async def create(
        self,
        email: str,
        password_hash: str,
        name: str,
        insured_id: str,
        country_code: str,
    ) -> UserRecord:
        """Insert a user row."""
        now = datetime.now(UTC)
        stmt = (
            insert(users)
            .values(
                id=uuid4(),
                email=email.lower(),
                password_hash=password_hash,
                name=name,
                insured_id=insured_id,
                country_code=country_code,
                created_at=now,
                updated_at=now,
            )
            .returning(users)
        )
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(stmt)
                await session.commit()
                row = result.mappings().first()
        except IntegrityError as e:
            raise ConflictException("User with this email or insured ID already exists") from e
        except (SQLAlchemyError, OSError) as e:
            raise StorageException("Credential store unavailable") from e

        return UserRecord.model_validate(dict(row))

    async def _find_one(self, column, value: str) -> UserRecord | None:
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(select(users).where(column == value))
                row = result.mappings().first()
        except (SQLAlchemyError, OSError) as e:
            raise StorageException("Credential store unavailable") from e
        return UserRecord.model_validate(dict(row)) if row else None

    async def find_by_email(self, email: str) -> UserRecord | None:
        """Find a user by email."""
        return await self._find_one(users.c.email, email.lower())

    async def find_by_insured_id(self, insured_id: str) -> UserRecord | None:
        """Find a user by insured id."""
        return await self._find_one(users.c.insured_id, insured_id)

    async def authenticate(self, email: str, password: str) -> UserRecord | None:
        """Verify the password against the stored hash."""
        user = await self.find_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            return None
        return user


class InMemoryCredentialStore:
    """Process-local adapter with the same contract."""

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._users: dict[UUID, UserRecord] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        email: str,
        password_hash: str,
        name: str,
        insured_id: str,
        country_code: str,
    ) -> UserRecord:
        """Create a user, enforcing unique email and insured id."""
        async with self._lock:
            email = email.lower()
            for user in self._users.values():
                if user.email == email or user.insured_id == insured_id:
                    raise ConflictException("User with this email or insured ID already exists")
            now = datetime.now(UTC)
            user = UserRecord(
                id=uuid4(),
                email=email,
                password_hash=password_hash,
                name=name,
                insured_id=insured_id,
                country_code=country_code,
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
        return user

    async def find_by_email(self, email: str) -> UserRecord | None:
        """Find a user by email."""
        email = email.lower()
        return next((u for u in self._users.values() if u.email == email), None)

    async def find_by_insured_id(self, insured_id: str) -> UserRecord | None:
        """Find a user by insured id."""
        return next((u for u in self._users.values() if u.insured_id == insured_id), None)

    async def authenticate(self, email: str, password: str) -> UserRecord | None:
        """Verify the password against the stored hash."""
        user = await self.find_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            return None
        return user
