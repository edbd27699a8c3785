"""Script to initialize database tables."""

import asyncio

from sqlalchemy.ext.asyncio import create_async_engine

from src.inspector_dispatch.infrastructure.database.models import Base
from src.inspector_dispatch.presentation.api.config import get_settings


async def create_tables():
    """Create all database tables."""
    database_url = get_settings().database_url
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, echo=True)

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        print("Database tables created successfully")

    except Exception as e:
        print(f"Error creating tables: {e}")
        raise
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(create_tables())
