import httpx
import logging
from typing import AsyncIterator, List, Optional

from flowtrack.domain.exceptions import UploadError, OrderFeedError
from flowtrack.application.interfaces import BlobStore, OrderFeed

logger = logging.getLogger(__name__)


class HTTPBlobStoreClient(BlobStore):
    def __init__(self, base_url: str, api_token: str, folder: str = "flowtrack",
                 timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._folder = folder
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def upload(self, content: bytes, filename: str) -> str:
        # PDF грузим как raw, чтобы хранилище не обрабатывало его как картинку
        resource_type = "raw" if filename.lower().endswith(".pdf") else "auto"
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self._base_url}/upload",
                    data={"folder": self._folder, "resource_type": resource_type},
                    files={"file": (filename, content)},
                    headers={"X-API-Key": self._api_token},
                )

                if response.status_code in (200, 201):
                    secure_url = response.json().get("secure_url")
                    if not secure_url:
                        raise UploadError(f"Blob store returned no URL for {filename}")
                    return secure_url
                else:
                    raise UploadError(f"Blob store ошибка: {response.status_code}")

        except httpx.RequestError as e:
            logger.error(f"Blob store ошибка подключения: {e}")
            raise UploadError(f"Blob store не доступен: {str(e)}")

    async def download(self, url: str) -> AsyncIterator[bytes]:
        try:
            async with self._client() as client:
                async with client.stream("GET", url) as response:
                    if response.status_code != 200:
                        raise UploadError(f"Blob store ошибка скачивания: {response.status_code}")
                    async for chunk in response.aiter_bytes():
                        yield chunk
        except httpx.RequestError as e:
            logger.error(f"Blob store ошибка подключения: {e}")
            raise UploadError(f"Blob store не доступен: {str(e)}")


class HTTPOrderFeedClient(OrderFeed):
    """Клиент Shopify-совместимого Admin API: все открытые заказы с пагинацией по Link"""

    def __init__(self, store_url: str, access_token: str, api_version: str = "2024-04",
                 page_size: int = 250, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._store_url = store_url
        self._access_token = access_token
        self._api_version = api_version
        self._page_size = page_size
        self._transport = transport

    @property
    def store_url(self) -> str:
        return self._store_url

    async def fetch_open_orders(self) -> List[dict]:
        if not self._store_url or not self._access_token:
            raise OrderFeedError("Order feed access token and store URL are not configured on the server.")

        next_url = (
            f"https://{self._store_url}/admin/api/{self._api_version}/orders.json"
            f"?status=open&limit={self._page_size}"
        )
        headers = {
            "X-Shopify-Access-Token": self._access_token,
            "Content-Type": "application/json",
        }
        orders: List[dict] = []
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=30.0) as client:
                while next_url:
                    response = await client.get(next_url, headers=headers)
                    if response.status_code == 401:
                        raise OrderFeedError("Order feed authentication failed. Please check the access token.")
                    if response.status_code == 403:
                        raise OrderFeedError("Order feed access forbidden. Please check the API scopes.")
                    if response.status_code != 200:
                        raise OrderFeedError(f"Order feed ошибка: {response.status_code}")

                    orders.extend(response.json().get("orders") or [])
                    next_url = response.links.get("next", {}).get("url")

        except httpx.RequestError as e:
            logger.error(f"Order feed ошибка подключения: {e}")
            raise OrderFeedError(
                f"Could not connect to the order feed at '{self._store_url}': {str(e)}"
            )

        logger.info(f"Получено {len(orders)} открытых заказов из фида")
        return orders
