from typing import List

from flowtrack.domain.models import Order
from flowtrack.domain.exceptions import OrderNotFoundError


class GetOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str) -> Order:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(order_id)
            return order


class ListOrdersUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, newest_first: bool = True) -> List[Order]:
        async with self._uow() as uow:
            return await uow.orders.list_all(newest_first=newest_first)
