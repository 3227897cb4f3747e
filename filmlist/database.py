import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from .config import DATABASE_URL, DB_POOL_SIZE, DB_MAX_OVERFLOW, load_catalog_seed

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": DB_POOL_SIZE, "max_overflow": DB_MAX_OVERFLOW, "pool_pre_ping": True}


engine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncSession:
    async with async_session() as session:
        yield session


async def init_db():
    from . import models
    from .catalog import seed_catalog

    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)

    seed_names = load_catalog_seed()
    if seed_names:
        async with async_session() as session:
            inserted = await seed_catalog(session, seed_names)
            await session.commit()
        logger.info("Catalog seeded (inserted=%s, seed_size=%s)", inserted, len(seed_names))


async def close_db():
    await engine.dispose()
