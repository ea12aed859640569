import json
import re
from collections import defaultdict
from pydantic import BaseModel, ValidationError

from flowtrack.domain.models import Order, LineItem
from flowtrack.domain.exceptions import InvalidArgumentError


_SEGMENT_RE = re.compile(r"^\s*(\d+)\s*x\s+(.+?)\s*$", re.I)


class ShipmentEntry(BaseModel):
    """Value Object — сколько единиц позиции отгружено за одно действие"""
    name: str
    quantity: int


def parse_product_description(text: str) -> list[LineItem]:
    """'2 x Mug, 1 x Cap' -> позиции. Нераспознанный сегмент идет с количеством 1."""
    items = []
    for segment in (text or "").split(","):
        segment = segment.strip()
        if not segment:
            continue
        match = _SEGMENT_RE.match(segment)
        if match:
            items.append(LineItem(name=match.group(2), quantity=int(match.group(1))))
        else:
            items.append(LineItem(name=segment, quantity=1))
    return items


def ensure_line_items(order: Order) -> Order:
    """Лениво строит позиции из product_name для старых заказов (идемпотентно)"""
    if not order.line_items and order.product_name:
        order.line_items = parse_product_description(order.product_name)
    return order


def apply_shipment(order: Order, entries: list[ShipmentEntry]) -> bool:
    """Увеличивает shipped_quantity. Возвращает True, если заказ отгружен полностью.

    Все записи проверяются до изменения, поэтому при ошибке позиции не меняются.
    """
    by_name = defaultdict(list)
    for li in order.line_items:
        by_name[li.name].append(li)
    requested = defaultdict(int)
    for entry in entries:
        if entry.quantity < 0:
            raise InvalidArgumentError(
                f"Shipped quantity for '{entry.name}' cannot be negative: {entry.quantity}"
            )
        if entry.name not in by_name:
            raise InvalidArgumentError(f"Order {order.id} has no line item named '{entry.name}'")
        requested[entry.name] += entry.quantity

    for name, quantity in requested.items():
        lines = by_name[name]
        remaining = sum(li.remaining for li in lines)
        if quantity > remaining:
            total = sum(li.quantity for li in lines)
            raise InvalidArgumentError(
                f"Cannot ship {quantity} x '{name}': only {remaining} of {total} left to ship"
            )

    # Одноименные позиции заполняются по порядку
    for name, quantity in requested.items():
        for li in by_name[name]:
            shipped = min(quantity, li.remaining)
            li.shipped_quantity += shipped
            quantity -= shipped

    return order.is_fully_shipped()


def parse_shipped_items(raw) -> list[ShipmentEntry]:
    """Разбор тела отгрузки (JSON-строка или список). Пустой список — не отгрузка."""
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise InvalidArgumentError("Shipped items must be a JSON list of {name, quantity} objects.")
    if not isinstance(raw, list):
        raise InvalidArgumentError("Shipped items must be a JSON list of {name, quantity} objects.")
    try:
        return [ShipmentEntry.model_validate(entry) for entry in raw]
    except ValidationError as e:
        raise InvalidArgumentError(f"Malformed shipped item: {e.errors()[0]['msg']}")
