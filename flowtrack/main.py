import logging
import sys
from contextlib import asynccontextmanager
from fastapi import FastAPI

from flowtrack.config import settings
from flowtrack.database import make_engine, make_session_factory, init_models
from flowtrack.infrastructure.http_clients import HTTPBlobStoreClient, HTTPOrderFeedClient
from flowtrack.presentation.api import router

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения: хранилище открывается здесь и здесь же закрывается"""
    engine = make_engine(settings.DATABASE_URL)
    app.state.session_factory = make_session_factory(engine)
    app.state.blob_store = HTTPBlobStoreClient(
        settings.BLOB_STORE_BASE_URL,
        settings.BLOB_STORE_API_TOKEN,
        folder=settings.BLOB_STORE_FOLDER,
        timeout=settings.UPLOAD_TIMEOUT_SECONDS,
    )
    app.state.order_feed = HTTPOrderFeedClient(
        settings.FEED_STORE_URL, settings.FEED_ACCESS_TOKEN, settings.FEED_API_VERSION
    )

    await init_models(engine, app.state.session_factory)
    logger.info("Хранилище заказов готово")

    yield

    logger.info("Приложение останавливается...")
    await engine.dispose()


def create_app(lifespan=lifespan) -> FastAPI:
    app = FastAPI(
        title="FlowTrack",
        description="Трекер заказов: Sales → Team → Digitizer → Vendor → Delivery",
        version="1.0.0",
        lifespan=lifespan
    )
    app.include_router(router, prefix="/api")

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


app = create_app()
