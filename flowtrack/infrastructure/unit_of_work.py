import logging
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from flowtrack.domain.exceptions import InternalError
from flowtrack.infrastructure.repositories import SQLAlchemyOrderRepository


logger = logging.getLogger(__name__)


class UnitOfWork:
    """Одна транзакция хранилища заказов на блок `async with uow() as u`"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def __call__(self):
        async with self._session_factory() as session:
            transaction = _OrderTransaction(session)
            try:
                yield transaction
            finally:
                # Все, что не закоммичено явно, откатывается
                if not transaction.committed:
                    await session.rollback()


class _OrderTransaction:
    def __init__(self, session: AsyncSession):
        self._session = session
        self.orders = SQLAlchemyOrderRepository(session)
        self.committed = False

    async def commit(self):
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Не удалось зафиксировать транзакцию: {e}")
            raise InternalError(f"Order store commit failed: {e}") from e
        self.committed = True

    async def rollback(self):
        await self._session.rollback()
