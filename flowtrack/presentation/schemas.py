from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

from flowtrack.domain.models import (
    OrderStatus, Priority, Role, LineItem, Attachment, Note, AssociatedUser
)


class LineItemInput(BaseModel):
    name: str
    quantity: int = Field(ge=0)


class CreateOrderRequest(BaseModel):
    customer_name: str
    product_name: str = ""
    priority: Priority = Priority.MEDIUM
    line_items: List[LineItemInput] = Field(default_factory=list)
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[str] = None
    text_under_design: Optional[str] = None


class AddNoteRequest(BaseModel):
    content: str
    target_role: Role = Role.TEAM


class EditNoteRequest(BaseModel):
    content: str


class OrderResponse(BaseModel):
    id: str
    customer_name: str
    product_name: str
    status: OrderStatus
    priority: Priority
    digitizer_id: Optional[str] = None
    vendor_id: Optional[str] = None
    digitizer_status: Optional[str] = None
    vendor_status: Optional[str] = None
    line_items: List[LineItem]
    attachments: List[Attachment]
    notes: List[Note]
    associated_users: List[AssociatedUser]
    source_order_id: Optional[str] = None
    source_order_number: Optional[str] = None
    source_order_url: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[str] = None
    financial_status: Optional[str] = None
    text_under_design: Optional[str] = None
    version: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, order):
        return cls(**order.model_dump())


class SyncResponse(BaseModel):
    message: str
    imported_orders: List[OrderResponse]
    skipped: int


class ErrorResponse(BaseModel):
    detail: str
