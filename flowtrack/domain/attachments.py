import uuid
from datetime import datetime
from typing import Optional

from flowtrack.domain.models import Order, Attachment, Role, PRIVILEGED_ROLES, utcnow
from flowtrack.domain.exceptions import AttachmentNotFoundError, ForbiddenError


def new_attachment_id() -> str:
    return f"att-{uuid.uuid4().hex[:12]}"


def add_attachment(
    order: Order,
    name: str,
    url: str,
    uploaded_by: Role,
    timestamp: Optional[datetime] = None,
) -> Attachment:
    attachment = Attachment(
        id=new_attachment_id(),
        name=name,
        url=url,
        uploaded_by=uploaded_by,
        timestamp=timestamp or utcnow(),
        from_shopify=False,
    )
    order.attachments.append(attachment)
    return attachment


def remove_attachment(order: Order, attachment_id: str, actor_role: Role) -> Attachment:
    """Бизнес-правило: вложения из Shopify не удаляются никогда,
    чужие вложения может удалить только Team/Admin"""
    attachment = order.find_attachment(attachment_id)
    if attachment is None:
        raise AttachmentNotFoundError(attachment_id)
    if attachment.from_shopify:
        raise ForbiddenError("Cannot delete attachments fetched from Shopify.")
    if actor_role not in PRIVILEGED_ROLES and actor_role != attachment.uploaded_by:
        raise ForbiddenError(
            f"Role {actor_role.value} cannot delete an attachment uploaded by {attachment.uploaded_by.value}."
        )
    order.attachments = [a for a in order.attachments if a.id != attachment_id]
    return attachment
