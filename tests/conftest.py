"""
Pytest fixtures for authorization kernel tests.
"""

import os

# Keep the module-level application engine off PostgreSQL during tests
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./agora_authz_test.db")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agora_authz.config import Settings, get_settings
from agora_authz.database import build_engine, build_session_maker
from agora_authz.kernel.identity.jwt import JWTManager
from agora_authz.kernel.models import Base, Deliberation, Principal, PrincipalRole
from tests.factories import add_participant, make_deliberation, make_principal


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """
    File-backed SQLite engine, one database per test.

    A file rather than :memory: so concurrent sessions share one database.
    """
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'authz.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_maker(db_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> Principal:
    """The only admin unless a test adds another."""
    return await make_principal(db_session, PrincipalRole.ADMIN, "Admin A")


@pytest_asyncio.fixture
async def user_b(db_session: AsyncSession) -> Principal:
    return await make_principal(db_session, PrincipalRole.USER, "User B")


@pytest_asyncio.fixture
async def user_c(db_session: AsyncSession) -> Principal:
    return await make_principal(db_session, PrincipalRole.USER, "User C")


@pytest_asyncio.fixture
async def facilitator(db_session: AsyncSession) -> Principal:
    return await make_principal(db_session, PrincipalRole.USER, "Facilitator F")


@pytest_asyncio.fixture
async def d1(db_session: AsyncSession, facilitator: Principal, user_b: Principal) -> Deliberation:
    """Private, active; user_b participates."""
    deliberation = await make_deliberation(db_session, facilitator, title="D1")
    await add_participant(db_session, deliberation, user_b)
    return deliberation


@pytest_asyncio.fixture
async def d2(db_session: AsyncSession, facilitator: Principal, user_c: Principal) -> Deliberation:
    """Private, active; user_c participates, user_b does not."""
    deliberation = await make_deliberation(db_session, facilitator, title="D2")
    await add_participant(db_session, deliberation, user_c)
    return deliberation


@pytest.fixture
def jwt_manager(settings: Settings) -> JWTManager:
    return JWTManager(settings)
