"""
Database fixtures for integration tests.

Every test gets its own in-memory SQLite database with the full schema.
"""

import itertools
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from taskvip.config.database import create_engine_for, create_session_maker
from taskvip.models import Base, User
from taskvip.utils.datetime_utils import utc_now


@pytest_asyncio.fixture
async def engine():
    """In-memory database with all tables created."""
    engine = create_engine_for("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    """Session factory bound to the test database."""
    return create_session_maker(engine)


@pytest_asyncio.fixture
async def session(session_maker):
    """Database session for one test."""
    async with session_maker() as session:
        yield session


@pytest.fixture
def make_user(session):
    """
    Factory for committed users.

    Users default to a 90 day old, unverified free account so that
    account-age fraud rules stay quiet unless a test opts in.
    """
    counter = itertools.count(1)

    async def _make_user(
        vip_level: int = 0,
        is_verified: bool = False,
        created_at: datetime | None = None,
        vip_expiry: datetime | None = None,
    ) -> User:
        n = next(counter)
        user = User(
            username=f"user{n}",
            referral_code=f"REF{n:04d}",
            vip_level=vip_level,
            vip_expiry=vip_expiry,
            is_verified=is_verified,
            created_at=created_at or utc_now() - timedelta(days=90),
        )
        session.add(user)
        await session.commit()
        return user

    return _make_user


@pytest.fixture
def make_chain(session, make_user):
    """
    Factory for a straight referral line.

    Returns users ordered root first; each one referred by the previous.
    """
    from taskvip.services.referral.chain_manager import ReferralChainManager

    async def _make_chain(*vip_levels: int) -> list[User]:
        manager = ReferralChainManager(session)
        users: list[User] = []
        for vip_level in vip_levels:
            user = await make_user(vip_level=vip_level)
            if users:
                await manager.build_chain(users[-1].referral_code, user.id)
                await session.commit()
            users.append(user)
        return users

    return _make_chain
