from datetime import timezone
from typing import Optional, List, Iterable
from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from flowtrack.domain.models import Order, Note, utcnow
from flowtrack.domain.exceptions import (
    ConcurrentModificationError, DuplicateSourceOrderError, InternalError
)
from flowtrack.infrastructure.db_schema import orders_tbl, order_sequences_tbl, ORDER_SEQUENCE_NAME
from flowtrack.application.interfaces import OrderRepository


ORDER_ID_PREFIX = "ORD-"


def format_order_id(number: int) -> str:
    return f"{ORDER_ID_PREFIX}{number:03d}"


def parse_order_number(order_id: str) -> Optional[int]:
    if not order_id or not order_id.startswith(ORDER_ID_PREFIX):
        return None
    try:
        return int(order_id[len(ORDER_ID_PREFIX):])
    except ValueError:
        return None


class SQLAlchemyOrderRepository(OrderRepository):
    def __init__(self, session: AsyncSession):
        self._session = session

    async def _execute(self, stmt):
        try:
            return await self._session.execute(stmt)
        except IntegrityError:
            raise
        except SQLAlchemyError as e:
            raise InternalError(f"Order store unavailable: {e}") from e

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        result = await self._execute(
            select(orders_tbl).where(orders_tbl.c.id == order_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def get_by_source_order_id(self, source_order_id: str) -> Optional[Order]:
        result = await self._execute(
            select(orders_tbl).where(orders_tbl.c.source_order_id == source_order_id)
        )
        row = result.fetchone()
        return self._to_domain(row) if row else None

    async def existing_source_order_ids(self, source_order_ids: Iterable[str]) -> set[str]:
        ids = list(source_order_ids)
        if not ids:
            return set()
        result = await self._execute(
            select(orders_tbl.c.source_order_id).where(orders_tbl.c.source_order_id.in_(ids))
        )
        return {row.source_order_id for row in result.fetchall()}

    async def list_all(self, newest_first: bool = True) -> List[Order]:
        if newest_first:
            ordering = (orders_tbl.c.created_at.desc(), orders_tbl.c.id.desc())
        else:
            ordering = (orders_tbl.c.created_at.asc(), orders_tbl.c.id.asc())
        result = await self._execute(select(orders_tbl).order_by(*ordering))
        return [self._to_domain(row) for row in result.fetchall()]

    async def next_id(self) -> str:
        """Атомарный инкремент счетчика одним UPDATE ... RETURNING в транзакции вставки"""
        result = await self._execute(
            update(order_sequences_tbl)
            .where(order_sequences_tbl.c.name == ORDER_SEQUENCE_NAME)
            .values(value=order_sequences_tbl.c.value + 1)
            .returning(order_sequences_tbl.c.value)
        )
        value = result.scalar_one_or_none()
        if value is None:
            raise InternalError("Order id sequence is not initialised")
        return format_order_id(value)

    async def init_sequence(self) -> int:
        """Создает счетчик при старте, продолжая максимальный существующий номер"""
        result = await self._execute(
            select(order_sequences_tbl.c.value).where(order_sequences_tbl.c.name == ORDER_SEQUENCE_NAME)
        )
        value = result.scalar_one_or_none()
        if value is not None:
            return value

        ids = await self._execute(select(orders_tbl.c.id))
        numbers = [parse_order_number(row.id) for row in ids.fetchall()]
        start = max((n for n in numbers if n is not None), default=0)
        await self._execute(
            insert(order_sequences_tbl).values(name=ORDER_SEQUENCE_NAME, value=start)
        )
        return start

    async def create(self, order: Order) -> Order:
        try:
            await self._execute(insert(orders_tbl).values(**self._to_row(order)))
        except IntegrityError as e:
            if order.source_order_id:
                raise DuplicateSourceOrderError(order.source_order_id) from e
            raise InternalError(f"Cannot insert order {order.id}: {e}") from e
        return order

    async def update(self, order: Order, expected_version: int) -> Order:
        """Запись только если версия не изменилась с момента чтения"""
        now = utcnow()
        values = self._to_row(order)
        values.pop("id")
        values.pop("created_at")
        values["version"] = expected_version + 1
        values["updated_at"] = now

        result = await self._execute(
            update(orders_tbl)
            .where(orders_tbl.c.id == order.id, orders_tbl.c.version == expected_version)
            .values(**values)
        )
        if result.rowcount == 0:
            raise ConcurrentModificationError(order.id)
        return order.model_copy(update={"version": expected_version + 1, "updated_at": now})

    def _to_row(self, order: Order) -> dict:
        """Трансформация Domain → DB"""
        data = order.model_dump(mode="json")
        data["created_at"] = order.created_at
        data["updated_at"] = order.updated_at
        return data

    def _to_domain(self, row) -> Order:
        """Трансформация DB → Domain (строковые заметки старого формата мигрируются)"""
        data = dict(row._mapping)
        # SQLite отдает naive datetime; в базе всегда UTC
        for key in ("created_at", "updated_at"):
            if data[key] is not None and data[key].tzinfo is None:
                data[key] = data[key].replace(tzinfo=timezone.utc)
        data["notes"] = [
            Note.from_legacy(note, index, data["created_at"]) if isinstance(note, str) else note
            for index, note in enumerate(row.notes or [])
        ]
        for key in ("line_items", "attachments", "associated_users"):
            data[key] = data.get(key) or []
        return Order.model_validate(data)
