import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class Role(str, Enum):
    SALES = "Sales"
    TEAM = "Team"
    ADMIN = "Admin"
    DIGITIZER = "Digitizer"
    VENDOR = "Vendor"


class OrderStatus(str, Enum):
    AT_TEAM = "At Team"
    AT_DIGITIZER = "At Digitizer"
    TEAM_REVIEW = "Team Review"
    AT_VENDOR = "At Vendor"
    PARTIALLY_SHIPPED = "Partially Shipped"
    OUT_FOR_DELIVERY = "Out for Delivery"


class Priority(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


SUB_STATUS_PENDING = "Pending"

PRIVILEGED_ROLES = (Role.TEAM, Role.ADMIN)
PRIORITY_ROLES = (Role.SALES, Role.TEAM, Role.ADMIN)

_LEGACY_NOTE_RE = re.compile(r"^(?P<role>Sales|Team|Admin|Digitizer|Vendor) \((?P<name>[^)]*)\): (?P<content>.*)$", re.S)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Actor(BaseModel):
    """Value Object — пользователь, выполняющий действие (приходит от identity provider)"""
    id: str
    name: str
    email: str = ""
    role: Role


class AssociatedUser(BaseModel):
    id: str
    name: str
    email: str = ""
    role: Role

    @classmethod
    def from_actor(cls, actor: Actor) -> "AssociatedUser":
        return cls(id=actor.id, name=actor.name, email=actor.email, role=actor.role)


class LineItem(BaseModel):
    """Value Object — позиция заказа с учетом отгруженного количества"""
    name: str
    quantity: int = Field(ge=0)
    shipped_quantity: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _shipped_within_quantity(self) -> "LineItem":
        if self.shipped_quantity > self.quantity:
            raise ValueError(
                f"shipped_quantity {self.shipped_quantity} exceeds quantity {self.quantity} for '{self.name}'"
            )
        return self

    @property
    def remaining(self) -> int:
        return self.quantity - self.shipped_quantity

    def is_fully_shipped(self) -> bool:
        return self.shipped_quantity >= self.quantity


class Attachment(BaseModel):
    id: str
    name: str
    url: str
    uploaded_by: Role
    timestamp: datetime
    from_shopify: bool = False


class Note(BaseModel):
    id: str
    content: str
    author_name: str
    author_role: Role
    target_role: Role
    timestamp: datetime
    is_edited: bool = False

    @classmethod
    def from_legacy(cls, text: str, index: int, timestamp: datetime) -> "Note":
        """Миграция строковой заметки вида 'Role (Name): text' в структурированную"""
        match = _LEGACY_NOTE_RE.match(text)
        if match:
            author_name = match.group("name")
            author_role = Role(match.group("role"))
            content = match.group("content")
        else:
            author_name = "System"
            author_role = Role.TEAM
            content = text
        return cls(
            id=f"note-legacy-{index}",
            content=content,
            author_name=author_name,
            author_role=author_role,
            target_role=Role.TEAM,
            timestamp=timestamp,
        )


class Order(BaseModel):
    """Domain Entity — заказ"""
    id: str
    customer_name: str
    product_name: str = ""
    status: OrderStatus = OrderStatus.AT_TEAM
    priority: Priority = Priority.MEDIUM
    digitizer_id: Optional[str] = None
    vendor_id: Optional[str] = None
    digitizer_status: Optional[str] = None
    vendor_status: Optional[str] = None
    line_items: list[LineItem] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    notes: list[Note] = Field(default_factory=list)
    associated_users: list[AssociatedUser] = Field(default_factory=list)

    # Поля внешнего источника (Shopify), передаются как есть
    source_order_id: Optional[str] = None
    source_order_number: Optional[str] = None
    source_order_url: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[str] = None
    financial_status: Optional[str] = None
    text_under_design: Optional[str] = None

    version: int = 1
    created_at: datetime
    updated_at: datetime

    def find_note(self, note_id: str) -> Optional[Note]:
        return next((n for n in self.notes if n.id == note_id), None)

    def find_attachment(self, attachment_id: str) -> Optional[Attachment]:
        return next((a for a in self.attachments if a.id == attachment_id), None)

    def is_associated(self, user_id: str) -> bool:
        return any(u.id == user_id for u in self.associated_users)

    def is_fully_shipped(self) -> bool:
        """Бизнес-правило: заказ отгружен, если отгружены все позиции"""
        return bool(self.line_items) and all(li.is_fully_shipped() for li in self.line_items)
