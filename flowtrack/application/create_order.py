import logging
from typing import Optional
from pydantic import BaseModel, Field, ValidationError

from flowtrack.domain.models import Order, OrderStatus, Priority, LineItem, Attachment, Note, utcnow
from flowtrack.domain.ledger import parse_product_description
from flowtrack.domain.exceptions import InvalidArgumentError


logger = logging.getLogger(__name__)


class NewOrderDTO(BaseModel):
    customer_name: str
    product_name: str = ""
    priority: Priority = Priority.MEDIUM
    line_items: list[LineItem] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)
    source_order_id: Optional[str] = None
    source_order_number: Optional[str] = None
    source_order_url: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[str] = None
    financial_status: Optional[str] = None
    text_under_design: Optional[str] = None


def parse_new_order(data: dict) -> NewOrderDTO:
    """Сырые данные заказа -> NewOrderDTO; ошибки валидации становятся InvalidArgumentError"""
    try:
        return NewOrderDTO.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        raise InvalidArgumentError(f"Invalid order data ({location}): {error['msg']}")


def build_order(order_id: str, data: NewOrderDTO) -> Order:
    """Новый заказ всегда начинается со статуса AT_TEAM"""
    now = utcnow()
    # Новый заказ ничего не отгрузил, что бы ни пришло в запросе
    line_items = [
        LineItem(name=li.name, quantity=li.quantity) for li in data.line_items
    ] or parse_product_description(data.product_name)
    product_name = data.product_name or ", ".join(f"{li.quantity} x {li.name}" for li in line_items)
    return Order(
        id=order_id,
        status=OrderStatus.AT_TEAM,
        line_items=line_items,
        **data.model_dump(exclude={"line_items", "product_name"}),
        product_name=product_name,
        version=1,
        created_at=now,
        updated_at=now,
    )


class CreateOrderUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_data: NewOrderDTO) -> Order:
        logger.info(f"Создание заказа для клиента {order_data.customer_name}")

        # id и вставка в одной транзакции
        async with self._uow() as uow:
            order_id = await uow.orders.next_id()
            order = await uow.orders.create(build_order(order_id, order_data))
            await uow.commit()

        logger.info(f"Заказ создан: {order.id}")
        return order
