from abc import ABC, abstractmethod
from typing import Optional, List, AsyncIterator, Iterable
from flowtrack.domain.models import Order


class OrderRepository(ABC):
    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def get_by_source_order_id(self, source_order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def existing_source_order_ids(self, source_order_ids: Iterable[str]) -> set[str]:
        pass

    @abstractmethod
    async def list_all(self, newest_first: bool = True) -> List[Order]:
        pass

    @abstractmethod
    async def next_id(self) -> str:
        pass

    @abstractmethod
    async def create(self, order: Order) -> Order:
        pass

    @abstractmethod
    async def update(self, order: Order, expected_version: int) -> Order:
        pass


class UnitOfWork(ABC):
    @property
    @abstractmethod
    def orders(self) -> OrderRepository:
        pass

    @abstractmethod
    async def __call__(self):
        pass

    @abstractmethod
    async def commit(self):
        pass

    @abstractmethod
    async def rollback(self):
        pass


class BlobStore(ABC):
    @abstractmethod
    async def upload(self, content: bytes, filename: str) -> str:
        """Возвращает secure URL загруженного файла"""
        pass

    @abstractmethod
    def download(self, url: str) -> AsyncIterator[bytes]:
        pass


class OrderFeed(ABC):
    @property
    @abstractmethod
    def store_url(self) -> str:
        pass

    @abstractmethod
    async def fetch_open_orders(self) -> List[dict]:
        pass
