import asyncio
import logging
from typing import Optional, Sequence
from pydantic import BaseModel

from flowtrack.domain.models import (
    Order, OrderStatus, Priority, Role, Actor, SUB_STATUS_PENDING, PRIORITY_ROLES
)
from flowtrack.domain.exceptions import (
    OrderNotFoundError, OrderAlreadyInStateError, ConcurrentModificationError, InvalidTransitionError,
    ForbiddenError, UploadError
)
from flowtrack.domain.ledger import ShipmentEntry, ensure_line_items, apply_shipment
from flowtrack.domain.attachments import add_attachment
from flowtrack.domain.notes import add_note, associate_user
from flowtrack.domain.transitions import (
    check_transition, check_shipment, compose_note, is_rejection, status_after_shipment
)
from flowtrack.application.interfaces import BlobStore


logger = logging.getLogger(__name__)


class NewFile(BaseModel):
    filename: str
    content: bytes


class TransitionRequestDTO(BaseModel):
    status: OrderStatus
    note: Optional[str] = None
    is_rejection: Optional[bool] = None
    digitizer_id: Optional[str] = None
    digitizer_name: Optional[str] = None
    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = None
    priority: Optional[Priority] = None
    digitizer_status: Optional[str] = None
    vendor_status: Optional[str] = None
    shipped_items: Optional[list[ShipmentEntry]] = None
    expected_version: Optional[int] = None
    uploaded_by: Optional[Role] = None


class UpdateOrderStatusUseCase:
    """Движок переходов статуса: проверка, побочные эффекты, одна запись с проверкой версии.

    Все изменения делаются на копии заказа; в хранилище попадает только
    итоговое состояние, поэтому любая ошибка до persist ничего не меняет.
    """

    def __init__(self, unit_of_work, blob_store: BlobStore, upload_timeout: float = 30.0):
        self._uow = unit_of_work
        self._blob_store = blob_store
        self._upload_timeout = upload_timeout

    async def __call__(
        self,
        order_id: str,
        request: TransitionRequestDTO,
        actor: Actor,
        files: Sequence[NewFile] = (),
    ) -> Order:
        logger.info(f"Смена статуса заказа {order_id} на '{request.status.value}' ({actor.role.value} {actor.id})")

        async with self._uow() as uow:
            # 1. Загрузка заказа и проверка снимка клиента
            stored = await uow.orders.get_by_id(order_id)
            if not stored:
                raise OrderNotFoundError(order_id)
            if request.expected_version is not None and request.expected_version != stored.version:
                logger.warning(
                    f"Заказ {order_id}: версия клиента {request.expected_version}, в базе {stored.version}"
                )
                raise ConcurrentModificationError(order_id)

            order = stored.model_copy(deep=True)
            current = order.status
            target = request.status

            # 2. Что именно меняет запрос
            reassigning = (
                current == OrderStatus.AT_DIGITIZER
                and target == OrderStatus.AT_DIGITIZER
                and bool(request.digitizer_id)
                and request.digitizer_id != order.digitizer_id
            )
            sub_status_change = (
                (request.digitizer_status is not None and request.digitizer_status != order.digitizer_status)
                or (request.vendor_status is not None and request.vendor_status != order.vendor_status)
            )
            priority_change = request.priority is not None and request.priority != order.priority
            # Пустой список или одни нули не отгрузка; отрицательные отклонит apply_shipment
            partial_ship = any(entry.quantity != 0 for entry in request.shipped_items or [])

            # 3. Ничего не меняется
            if current == target and not (reassigning or sub_status_change or priority_change
                                          or partial_ship or files):
                logger.warning(f"Заказ {order_id} уже в статусе '{current.value}'")
                raise OrderAlreadyInStateError(current)

            # 4. Легальность перехода и права
            rejection = is_rejection(request.note, request.is_rejection)
            try:
                check_transition(current, target, rejection=rejection)
                if partial_ship:
                    check_shipment(current)
            except InvalidTransitionError:
                logger.warning(f"Заказ {order_id}: недопустимый переход '{current.value}' -> '{target.value}'")
                raise

            if priority_change and actor.role not in PRIORITY_ROLES:
                raise ForbiddenError(f"Role {actor.role.value} cannot change order priority.")

            # 5. Пользователь становится связанным с заказом
            associate_user(order, actor)

            # 6. Позиции и отгрузка (до загрузки файлов)
            fully_shipped = None
            if partial_ship:
                ensure_line_items(order)
                fully_shipped = apply_shipment(order, request.shipped_items)

            # 7. Файлы
            await self._upload_files(order, files, request.uploaded_by or actor.role)

            # 8. Новый статус; при отгрузке он вычисляется
            if fully_shipped is not None:
                target = status_after_shipment(fully_shipped)
            order.status = target

            # 9. Остальные поля
            if request.digitizer_id is not None:
                order.digitizer_id = request.digitizer_id
            if request.vendor_id is not None:
                order.vendor_id = request.vendor_id
            if request.priority is not None:
                order.priority = request.priority
            if request.digitizer_status is not None:
                order.digitizer_status = request.digitizer_status
            if request.vendor_status is not None:
                order.vendor_status = request.vendor_status

            # 10. Сброс подстатуса при входе на этап
            if target != current:
                if target == OrderStatus.AT_DIGITIZER:
                    order.digitizer_status = SUB_STATUS_PENDING
                elif target == OrderStatus.AT_VENDOR:
                    order.vendor_status = SUB_STATUS_PENDING

            # 11. Служебная заметка
            composed = compose_note(
                current,
                target,
                request.note,
                fully_shipped=fully_shipped,
                rejection=rejection,
                reassigning=reassigning,
                digitizer_name=request.digitizer_name,
                vendor_name=request.vendor_name,
            )
            if composed:
                content, target_role = composed
                add_note(order, content, actor, target_role)

            # 12. Одна запись с проверкой версии
            updated = await uow.orders.update(order, expected_version=stored.version)
            await uow.commit()

        logger.info(f"Заказ {order_id}: '{current.value}' -> '{updated.status.value}' (версия {updated.version})")
        return updated

    async def _upload_files(self, order: Order, files: Sequence[NewFile], uploaded_by: Role) -> None:
        for file in files:
            try:
                url = await asyncio.wait_for(
                    self._blob_store.upload(file.content, file.filename),
                    timeout=self._upload_timeout
                )
            except asyncio.TimeoutError:
                logger.error(f"Загрузка файла {file.filename} для заказа {order.id} превысила {self._upload_timeout}с")
                raise UploadError(f"File upload timed out: {file.filename}")
            except UploadError as e:
                logger.error(f"Ошибка загрузки файла {file.filename} для заказа {order.id}: {e}")
                raise
            add_attachment(order, file.filename, url, uploaded_by)
