import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from filmlist.catalog import seed_catalog
from filmlist.models import Base, User

CATALOG_NAMES = [
    "Abacus",
    "Alphabet City",
    "Babe",
    "Blade Runner",
    "Casablanca",
    "Crabs 100%",
    "Grab_Bag",
    "Zabriskie Point",
]


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'filmlist.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(session_factory):
    async def _make(username: str) -> User:
        async with session_factory() as session:
            user = User(username=username)
            session.add(user)
            await session.commit()
            return user

    return _make


@pytest.fixture
async def alice(make_user):
    return await make_user("alice")


@pytest.fixture
async def bob(make_user):
    return await make_user("bob")


@pytest.fixture
async def catalog(session_factory):
    async with session_factory() as session:
        await seed_catalog(session, CATALOG_NAMES)
        await session.commit()
    return CATALOG_NAMES
