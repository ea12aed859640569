import logging
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from flowtrack.infrastructure.db_schema import metadata
from flowtrack.infrastructure.repositories import SQLAlchemyOrderRepository

logger = logging.getLogger(__name__)


def make_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, pool_pre_ping=not url.startswith("sqlite"))


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_models(engine: AsyncEngine, session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Создает таблицы (для dev и тестов; в проде alembic) и инициализирует счетчик id"""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    async with session_factory() as session:
        start = await SQLAlchemyOrderRepository(session).init_sequence()
        await session.commit()
    logger.info(f"Счетчик заказов инициализирован: {start}")
