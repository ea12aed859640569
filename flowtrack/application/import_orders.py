"""Импорт заказов из внешнего магазина (Shopify-совместимый фид).

translate_feed_order превращает сырой заказ фида в NewOrderDTO,
SyncExternalOrdersUseCase создает новые заказы, пропуская уже импортированные.
"""
import logging
import re
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlparse, unquote
from pydantic import BaseModel

from flowtrack.domain.models import Order, LineItem, Attachment, Note, Role, utcnow
from flowtrack.domain.attachments import new_attachment_id
from flowtrack.domain.notes import new_note_id
from flowtrack.domain.exceptions import DuplicateSourceOrderError, InvalidArgumentError
from flowtrack.application.create_order import NewOrderDTO, build_order
from flowtrack.application.interfaces import OrderFeed


logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"(https?://[^\s'\"]+)")

IMPORT_AUTHOR = "System"
TEXT_UNDER_DESIGN_PREFIX = "text under design"


class ImportResult(BaseModel):
    imported: List[Order]
    skipped: int = 0


def _file_name_from_url(url: str) -> str:
    path = urlparse(url).path
    name = unquote(path.rsplit("/", 1)[-1]) if path else ""
    return name or "Attachment"


def extract_attachments(text, found_urls: set, timestamp: datetime) -> List[Attachment]:
    """Ссылки из произвольного текста -> неудаляемые вложения (без дублей по URL)"""
    if not text or not isinstance(text, str):
        return []
    attachments = []
    for url in _URL_RE.findall(text):
        if url in found_urls:
            continue
        found_urls.add(url)
        attachments.append(Attachment(
            id=new_attachment_id(),
            name=_file_name_from_url(url),
            url=url,
            uploaded_by=Role.SALES,
            timestamp=timestamp,
            from_shopify=True,
        ))
    return attachments


def format_shipping_address(address: Optional[dict]) -> str:
    if not address:
        return "No shipping address provided."
    city_line = " ".join(filter(None, [
        address.get("city"),
        address.get("province_code") or address.get("province"),
        address.get("zip"),
    ]))
    parts = [
        address.get("name"),
        address.get("company"),
        address.get("address1"),
        address.get("address2"),
        city_line,
        address.get("country"),
    ]
    return ", ".join(p for p in parts if p)


def format_financial_status(status: Optional[str]) -> Optional[str]:
    if not status:
        return None
    return " ".join(word.capitalize() for word in status.split("_"))


def _parse_timestamp(value) -> datetime:
    if not value:
        return utcnow()
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _feed_quantity(item: dict) -> int:
    quantity = item.get("quantity")
    return 1 if quantity is None else int(quantity)


def translate_feed_order(raw: dict, store_url: str) -> NewOrderDTO:
    """Сырой заказ фида -> NewOrderDTO. Битая запись -> InvalidArgumentError"""
    try:
        return _translate_feed_order(raw, store_url)
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidArgumentError(f"Malformed feed order {raw.get('id')}: {e!r}") from e


def _translate_feed_order(raw: dict, store_url: str) -> NewOrderDTO:
    timestamp = _parse_timestamp(raw.get("created_at"))
    found_urls: set = set()
    attachments: List[Attachment] = []
    text_under_design: List[str] = []

    # 1. Общая заметка заказа
    attachments += extract_attachments(raw.get("note"), found_urls, timestamp)

    # 2. Атрибуты заметки
    for prop in raw.get("note_attributes") or []:
        attachments += extract_attachments(prop.get("value"), found_urls, timestamp)

    # 3. Свойства позиций: ссылки и текст под дизайном
    for item in raw.get("line_items") or []:
        for prop in item.get("properties") or []:
            attachments += extract_attachments(prop.get("value"), found_urls, timestamp)
            name = (prop.get("name") or "").lower().strip()
            if name.startswith(TEXT_UNDER_DESIGN_PREFIX) and prop.get("value"):
                text_under_design.append(str(prop["value"]))

    line_items = [
        LineItem(name=item["name"], quantity=_feed_quantity(item))
        for item in raw.get("line_items") or []
    ]
    customer = raw.get("customer") or {}
    customer_name = f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip()
    order_number = raw.get("order_number")

    notes = [
        Note(
            id=new_note_id(),
            content=content,
            author_name=IMPORT_AUTHOR,
            author_role=Role.SALES,
            target_role=Role.TEAM,
            timestamp=timestamp,
        )
        for content in (
            f"Imported from Shopify. Order #{order_number}",
            "Order automatically assigned to Team for processing.",
        )
    ]

    return NewOrderDTO(
        customer_name=customer_name or "Guest Customer",
        product_name=", ".join(f"{li.quantity} x {li.name}" for li in line_items),
        line_items=line_items,
        attachments=attachments,
        notes=notes,
        source_order_id=str(raw["id"]),
        source_order_number=f"#{order_number}",
        source_order_url=f"https://{store_url}/admin/orders/{raw['id']}",
        customer_email=customer.get("email"),
        customer_phone=customer.get("phone"),
        shipping_address=format_shipping_address(raw.get("shipping_address")),
        financial_status=format_financial_status(raw.get("financial_status")),
        text_under_design=", ".join(text_under_design) or None,
    )


class SyncExternalOrdersUseCase:
    def __init__(self, unit_of_work, order_feed: OrderFeed):
        self._uow = unit_of_work
        self._feed = order_feed

    async def __call__(self) -> ImportResult:
        raw_orders = await self._feed.fetch_open_orders()
        if not raw_orders:
            logger.info("Новых открытых заказов в фиде нет")
            return ImportResult(imported=[])

        async with self._uow() as uow:
            seen = await uow.orders.existing_source_order_ids(
                str(o["id"]) for o in raw_orders if o.get("id") is not None
            )

        imported = []
        for raw in raw_orders:
            if raw.get("id") is None:
                logger.warning("Заказ фида без id пропущен")
                continue
            source_id = str(raw["id"])
            if source_id in seen:
                continue
            seen.add(source_id)

            try:
                data = translate_feed_order(raw, self._feed.store_url)
            except InvalidArgumentError as e:
                logger.error(f"Заказ фида {source_id} пропущен: {e}")
                continue
            try:
                # id и вставка в одной транзакции
                async with self._uow() as uow:
                    order_id = await uow.orders.next_id()
                    order = await uow.orders.create(build_order(order_id, data))
                    await uow.commit()
            except DuplicateSourceOrderError:
                logger.info(f"Заказ фида {source_id} уже импортирован параллельно")
                continue
            imported.append(order)
            logger.info(f"Импортирован заказ {order.id} (фид {source_id})")

        skipped = len(raw_orders) - len(imported)
        logger.info(f"Импорт завершен: новых {len(imported)}, пропущено {skipped}")
        return ImportResult(imported=imported, skipped=skipped)
