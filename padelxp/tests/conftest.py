"""
Shared pytest configuration for backend tests.

Database tests run against a throwaway SQLite file (aiosqlite) per test, so
they never touch a development or production database.
"""

import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("ENABLE_EMAIL", "false")

import asyncio
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from padelxp.database.db import Base


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a test database engine with a fresh schema."""
    # NullPool avoids connection reuse across event loops
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'padelxp_test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        from padelxp.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    # Code that opens its own session through db.AsyncSessionLocal uses the test engine
    from padelxp.database import db

    test_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = test_session_maker

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    await asyncio.sleep(0.01)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Test database session; rolled back and closed after the test."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()
