"""Async engine and request-scoped sessions for the order store."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from checkout_bridge.config import settings
from checkout_bridge.models.order import Base

engine = create_async_engine(settings.database_url, echo=False)
# Orders stay readable after commit
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    """Create the order, order line and audit tables that are missing."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session
