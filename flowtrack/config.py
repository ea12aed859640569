import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    # Database
    POSTGRES_CONNECTION_STRING: str = os.getenv("POSTGRES_CONNECTION_STRING", "")
    DATABASE_URL_OVERRIDE: str = os.getenv("DATABASE_URL", "")

    # Blob store (хранилище файлов)
    BLOB_STORE_BASE_URL: str = os.getenv("BLOB_STORE_BASE_URL", "")
    BLOB_STORE_API_TOKEN: str = os.getenv("BLOB_STORE_API_TOKEN", "")
    BLOB_STORE_FOLDER: str = os.getenv("BLOB_STORE_FOLDER", "flowtrack")
    UPLOAD_TIMEOUT_SECONDS: float = float(os.getenv("UPLOAD_TIMEOUT_SECONDS", "30"))
    MAX_UPLOAD_FILES: int = int(os.getenv("MAX_UPLOAD_FILES", "5"))
    MAX_UPLOAD_BYTES: int = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

    # Внешний фид заказов (Shopify Admin API)
    FEED_STORE_URL: str = os.getenv("FEED_STORE_URL", "")
    FEED_ACCESS_TOKEN: str = os.getenv("FEED_ACCESS_TOKEN", "")
    FEED_API_VERSION: str = os.getenv("FEED_API_VERSION", "2024-04")
    FEED_SYNC_INTERVAL_SECONDS: float = float(os.getenv("FEED_SYNC_INTERVAL_SECONDS", "300"))

    @property
    def DATABASE_URL(self) -> str:
        """Асинхронный URL для приложения"""
        if self.DATABASE_URL_OVERRIDE:
            return self.DATABASE_URL_OVERRIDE
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql+asyncpg://")

    @property
    def SYNC_DATABASE_URL(self) -> str:
        """Синхронный URL для Alembic"""
        url = self.DATABASE_URL
        return url.replace("postgresql+asyncpg://", "postgresql://").replace("sqlite+aiosqlite://", "sqlite://")

    @property
    def feed_configured(self) -> bool:
        return bool(self.FEED_STORE_URL and self.FEED_ACCESS_TOKEN)


settings = Settings()
