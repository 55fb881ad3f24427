"""
Database engine and session management.

The engine is built from settings.DATABASE_URL at import; connections
are opened on first use.
"""
from typing import AsyncIterator

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from clanwins.config import settings


engine = create_async_engine(settings.DATABASE_URL, echo=False, pool_pre_ping=True)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a database session."""
    async with AsyncSessionLocal() as session:
        yield session


def dialect_insert(db: AsyncSession, model):
    """
    Build an INSERT that supports ON CONFLICT DO NOTHING.

    PostgreSQL is the production store; SQLite is used by the test suite.
    Both dialects expose the same on_conflict_do_nothing() API.
    """
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        return postgresql.insert(model)
    if dialect_name == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Unsupported dialect for conflict-ignoring insert: {dialect_name}")
