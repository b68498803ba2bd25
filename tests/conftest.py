import uuid
from datetime import date, datetime, time, timezone

import pytest
from fastapi import Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from db import Base, get_async_session
from main import app
from mentors.models import AvailabilityWindow, MentorProfile
from notifications import InMemoryNotificationSink, get_notification_sink
from users.dependencies import current_active_user
from users.models import User

# 2030-01-07 is a Monday (day_of_week=1 with 0=Sunday)
MONDAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


def at(day: date, hhmm: str) -> datetime:
    hours, minutes = (int(p) for p in hhmm.split(":"))
    return datetime.combine(day, time(hours, minutes), tzinfo=timezone.utc)


async def make_user(session, role="learner", full_name=None, tz="UTC") -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{role}-{uuid.uuid4().hex[:10]}@example.com",
        hashed_password="x",
        full_name=full_name or f"Test {role.title()}",
        role=role,
        timezone=tz,
        is_active=True,
        is_verified=True,
    )
    session.add(user)
    await session.commit()
    return user


async def make_mentor(
    session,
    hourly_rate=60.0,
    windows=((1, "09:00", "17:00"),),
    verified=True,
    active=True,
    skills=("python",),
    tz="Europe/Berlin",
) -> User:
    user = await make_user(session, role="mentor", full_name="Ada Mentor", tz=tz)
    session.add(
        MentorProfile(
            user_id=user.id,
            public_handle=f"mentor-{uuid.uuid4().hex[:8]}",
            hourly_rate=hourly_rate,
            skills=list(skills),
            is_verified=verified,
            is_active=active,
        )
    )
    for day, start, end in windows:
        session.add(
            AvailabilityWindow(
                mentor_id=user.id,
                day_of_week=day,
                start_time=time.fromisoformat(start),
                end_time=time.fromisoformat(end),
            )
        )
    await session.commit()
    return user


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def notifier():
    return InMemoryNotificationSink()


@pytest.fixture
async def learner(session):
    return await make_user(session, role="learner", full_name="Lee Learner", tz="America/New_York")


@pytest.fixture
async def mentor(session):
    return await make_mentor(session)


@pytest.fixture
async def admin(session):
    return await make_user(session, role="admin", full_name="Ann Admin")


@pytest.fixture
async def as_user(session_maker, notifier):
    """Build an HTTP client authenticated as the given user."""
    clients = []
    users = {}

    async def _override_session():
        async with session_maker() as s:
            yield s

    def _override_user(request: Request) -> User:
        return users[request.headers["x-test-user"]]

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_notification_sink] = lambda: notifier
    app.dependency_overrides[current_active_user] = _override_user

    def _client(user: User) -> AsyncClient:
        users[str(user.id)] = user
        client = AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            headers={"x-test-user": str(user.id)},
        )
        clients.append(client)
        return client

    yield _client
    for client in clients:
        await client.aclose()
    app.dependency_overrides.clear()
