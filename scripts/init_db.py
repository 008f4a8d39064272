"""Script to initialize the fast-path and country databases."""

import asyncio

from sqlalchemy import text

from medsaga.config import settings
from medsaga.database import dispose_engines, engine, get_country_engine
from medsaga.models.appointments import metadata as appointments_metadata
from medsaga.models.country_appointments import metadata as country_metadata
from medsaga.models.users import metadata as users_metadata


async def init_db() -> None:
    """Create every table in every configured database."""
    async with engine.begin() as conn:
        # Enable pgcrypto extension
        await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))

        await conn.run_sync(users_metadata.create_all)
        await conn.run_sync(appointments_metadata.create_all)

    print("✓ Fast-path database initialized")

    for country_code in settings.supported_countries:
        async with get_country_engine(country_code).begin() as conn:
            await conn.run_sync(country_metadata.create_all)
        print(f"✓ {country_code} database initialized")

    await dispose_engines()


if __name__ == "__main__":
    asyncio.run(init_db())
