import time
import uuid
from datetime import date, datetime
from typing import AsyncGenerator, Dict, Optional, Tuple
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from notifier.db.models import (
    Base,
    EventKind,
    NotificationOccurrence,
    OccurrenceStatus,
    User,
)
from notifier.services.events.registry import create_default_registry
from notifier.services.scheduler.notification_queue import NotificationQueue


# Test database setup
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeRedis:
    """In-memory stand-in for the redis.asyncio commands the service uses."""

    def __init__(self):
        self._store: Dict[str, Tuple[str, Optional[float]]] = {}

    def _alive(self, key: str) -> bool:
        entry = self._store.get(key)
        if entry is None:
            return False
        _, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._store[key]
            return False
        return True

    async def get(self, key: str) -> Optional[str]:
        return self._store[key][0] if self._alive(key) else None

    async def set(self, key, value, ex=None, px=None, nx=False):
        if nx and self._alive(key):
            return None
        ttl = ex if ex is not None else (px / 1000 if px is not None else None)
        self._store[key] = (
            str(value),
            time.monotonic() + ttl if ttl is not None else None,
        )
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._alive(key):
                del self._store[key]
                removed += 1
        return removed

    async def exists(self, key: str) -> int:
        return 1 if self._alive(key) else 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None


@pytest_asyncio.fixture
async def test_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def registry():
    return create_default_registry()


@pytest.fixture
def mock_send_task():
    """Mock of the delivery celery task; only apply_async is used."""
    mock_task = Mock()
    mock_task.apply_async = Mock(return_value=None)
    return mock_task


@pytest.fixture
def notification_queue(fake_redis, mock_send_task) -> NotificationQueue:
    return NotificationQueue(fake_redis, mock_send_task, job_key_ttl_seconds=3600)


@pytest.fixture
def mock_notification_service():
    service = Mock()
    service.send_event_notification = AsyncMock(return_value=True)
    return service


# Test data factories
@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory that persists a user and returns it."""

    async def _make_user(
        birthday: date,
        tz_name: str = "UTC",
        anniversary_date: Optional[date] = None,
        first_name: str = "Ada",
        last_name: str = "Lovelace",
        user_id: Optional[str] = None,
    ) -> User:
        user = User(
            id=user_id or str(uuid.uuid4()),
            first_name=first_name,
            last_name=last_name,
            birthday=birthday,
            timezone=tz_name,
            anniversary_date=anniversary_date,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_occurrence(db_session: AsyncSession):
    """Factory that persists an occurrence row directly."""

    async def _make_occurrence(
        user: User,
        scheduled_at: datetime,
        status: OccurrenceStatus = OccurrenceStatus.PENDING,
        event_kind: EventKind = EventKind.BIRTHDAY,
        occurrence_year: Optional[int] = None,
        retry_count: int = 0,
        updated_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
    ) -> NotificationOccurrence:
        created = created_at or scheduled_at
        occurrence = NotificationOccurrence(
            id=str(uuid.uuid4()),
            user_id=user.id,
            event_kind=event_kind,
            occurrence_year=occurrence_year or scheduled_at.year,
            status=status,
            scheduled_at=scheduled_at,
            retry_count=retry_count,
            event_metadata={"timezone": user.timezone},
            created_at=created,
            updated_at=updated_at or created,
        )
        db_session.add(occurrence)
        await db_session.commit()
        await db_session.refresh(occurrence)
        return occurrence

    return _make_occurrence


@pytest.fixture
def fetch_occurrences(session_factory):
    """Read occurrences through a fresh session so no stale identity map is involved."""
    async def _fetch(**filters):
        async with session_factory() as session:
            stmt = select(NotificationOccurrence).order_by(
                NotificationOccurrence.created_at
            )
            for column, value in filters.items():
                stmt = stmt.where(getattr(NotificationOccurrence, column) == value)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    return _fetch
