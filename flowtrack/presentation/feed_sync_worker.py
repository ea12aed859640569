import asyncio
import logging

from flowtrack.database import make_engine, make_session_factory, init_models
from flowtrack.infrastructure.unit_of_work import UnitOfWork
from flowtrack.infrastructure.http_clients import HTTPOrderFeedClient
from flowtrack.application.import_orders import SyncExternalOrdersUseCase
from flowtrack.config import settings

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def feed_sync_worker():
    """Worker для периодического импорта заказов из внешнего фида"""
    if not settings.feed_configured:
        logger.warning("FEED_STORE_URL / FEED_ACCESS_TOKEN не заданы, feed sync worker не запущен")
        return
    logger.info("Feed sync worker запущен")

    engine = make_engine(settings.DATABASE_URL)
    session_factory = make_session_factory(engine)
    await init_models(engine, session_factory)
    order_feed = HTTPOrderFeedClient(settings.FEED_STORE_URL, settings.FEED_ACCESS_TOKEN, settings.FEED_API_VERSION)

    try:
        while True:
            try:
                use_case = SyncExternalOrdersUseCase(
                    unit_of_work=UnitOfWork(session_factory),
                    order_feed=order_feed
                )

                result = await use_case()
                if result.imported:
                    logger.info(f"Импортировано {len(result.imported)} заказов")

                await asyncio.sleep(settings.FEED_SYNC_INTERVAL_SECONDS)

            except Exception as e:
                logger.error(f"Ошибка в feed sync worker: {e}", exc_info=True)
                await asyncio.sleep(settings.FEED_SYNC_INTERVAL_SECONDS)
    finally:
        await engine.dispose()


async def main():
    await feed_sync_worker()


if __name__ == "__main__":
    asyncio.run(main())
