import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

# Ensure critical settings exist before the app/config modules import.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("APP_TIMEZONE", "America/Sao_Paulo")
os.environ.setdefault("CLASS_CAPACITY", "10")

from api.deps import get_class_capacity, get_clock
from app.models.student import EnrollmentTier, Student
from app.utils.clock import FrozenClock
from core.db import get_db
from core.db.base import Base
from core.db.session import enable_sqlite_foreign_keys
from main import app

# Use SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

engine = create_async_engine(TEST_DATABASE_URL, echo=False)
event.listen(engine.sync_engine, "connect", enable_sqlite_foreign_keys)
TestSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

# 2024-01-10 09:00 in Sao Paulo (UTC-3)
FROZEN_AT = datetime(2024, 1, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create and drop all tables for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for testing."""
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory() -> async_sessionmaker:
    """Session factory for tests that need several independent sessions."""
    return TestSessionLocal


@pytest.fixture
def frozen_clock() -> FrozenClock:
    """Clock pinned to a Wednesday morning in the studio timezone."""
    return FrozenClock(FROZEN_AT, "America/Sao_Paulo")


@pytest.fixture
def capacity() -> int:
    return 3


@pytest.fixture
async def client(frozen_clock: FrozenClock, capacity: int) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing."""

    async def override_get_db():
        async with TestSessionLocal() as session:
            yield session

    async def override_get_clock():
        return frozen_clock

    async def override_get_class_capacity():
        return capacity

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = override_get_clock
    app.dependency_overrides[get_class_capacity] = override_get_class_capacity

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def create_student(db_session: AsyncSession):
    """Factory fixture to create students."""

    async def _create_student(
        name: str = "Test Student",
        tier: EnrollmentTier = EnrollmentTier.PAY_PER_SESSION,
        monthly_fee: Optional[Decimal] = None,
        due_day: int = 5,
    ) -> Student:
        student = Student(
            name=name,
            enrollment_tier=tier,
            monthly_fee=monthly_fee,
            due_day=due_day,
        )
        db_session.add(student)
        await db_session.commit()
        return student

    return _create_student
