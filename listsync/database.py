import logging

from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from . import config, models

logger = logging.getLogger(__name__)

async_engine = create_async_engine(
    config.DATABASE_URL,
    echo=config.DATABASE_ECHO,
    connect_args={"check_same_thread": False},
)


@event.listens_for(async_engine.sync_engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


AsyncSessionLocal = sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def seed_default_categories(session: AsyncSession) -> int:
    """Insert the global default categories once. Returns how many were added."""
    result = await session.execute(
        select(models.Category.id).where(models.Category.is_default.is_(True))
    )
    if result.first() is not None:
        return 0

    for name, color in config.DEFAULT_CATEGORIES:
        session.add(
            models.Category(name=name, color=color, is_default=True, user_id=None)
        )
    await session.commit()
    return len(config.DEFAULT_CATEGORIES)


async def init_db():
    async with async_engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        seeded = await seed_default_categories(session)
    if seeded:
        logger.info("Seeded %d default categories", seeded)


async def drop_db():
    async with async_engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.drop_all)


async def get_db_async():
    async with AsyncSessionLocal() as session:
        yield session
