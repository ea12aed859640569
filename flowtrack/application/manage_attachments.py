import logging
from typing import AsyncIterator

from flowtrack.domain.models import Order, Actor, Attachment
from flowtrack.domain.exceptions import OrderNotFoundError, AttachmentNotFoundError, ForbiddenError
from flowtrack.domain.attachments import remove_attachment
from flowtrack.application.interfaces import BlobStore


logger = logging.getLogger(__name__)


class DeleteOrderAttachmentUseCase:
    def __init__(self, unit_of_work):
        self._uow = unit_of_work

    async def __call__(self, order_id: str, attachment_id: str, actor: Actor) -> Order:
        async with self._uow() as uow:
            stored = await uow.orders.get_by_id(order_id)
            if not stored:
                raise OrderNotFoundError(order_id)

            order = stored.model_copy(deep=True)
            try:
                remove_attachment(order, attachment_id, actor.role)
            except (AttachmentNotFoundError, ForbiddenError) as e:
                logger.warning(f"Вложение {attachment_id} заказа {order_id} не удалено: {e}")
                raise
            updated = await uow.orders.update(order, expected_version=stored.version)
            await uow.commit()

        logger.info(f"Вложение {attachment_id} удалено из заказа {order_id}")
        return updated


class DownloadAttachmentUseCase:
    def __init__(self, unit_of_work, blob_store: BlobStore):
        self._uow = unit_of_work
        self._blob_store = blob_store

    async def __call__(self, order_id: str, attachment_id: str) -> tuple[Attachment, AsyncIterator[bytes]]:
        async with self._uow() as uow:
            order = await uow.orders.get_by_id(order_id)
            if not order:
                raise OrderNotFoundError(order_id)

        attachment = order.find_attachment(attachment_id)
        if attachment is None:
            raise AttachmentNotFoundError(attachment_id)
        return attachment, self._blob_store.download(attachment.url)
