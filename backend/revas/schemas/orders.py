from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from revas.models import DocumentType, OrderStatus, SavedStatus
from revas.schemas.documents import DocumentRead


class OrderTerms(BaseModel):
    """Commercial terms shared by create, draft and draft-update payloads.

    Every field is optional at the schema level; the order service reports all
    missing required fields together instead of failing on the first one.
    """

    buyer_id: Optional[int] = None
    supplier_id: Optional[int] = None
    product: Optional[list[str]] = None
    capacity: Optional[float] = Field(default=None, gt=0)
    price_per_tonne: Optional[float] = Field(default=None, gt=0)
    payment_terms: Optional[int] = Field(default=None, ge=0, le=100)
    shipping_type: Optional[str] = None
    buyer_name: Optional[str] = None
    buyer_location: Optional[str] = None
    supplier_name: Optional[str] = None
    supplier_location: Optional[str] = None
    supplier_price: Optional[float] = Field(default=None, ge=0)
    shipping_cost: Optional[float] = Field(default=None, ge=0)
    negotiate_price: Optional[bool] = None
    price_range: Optional[str] = None


class OrderCreate(OrderTerms):
    pass


class OrderDraftUpdate(OrderTerms):
    pass


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    product: Optional[list[str]] = None
    capacity: Optional[float] = None
    price_per_tonne: Optional[float] = None
    payment_terms: Optional[int] = None
    shipping_type: Optional[str] = None
    buyer_name: Optional[str] = None
    buyer_location: Optional[str] = None
    supplier_name: Optional[str] = None
    supplier_location: Optional[str] = None
    supplier_price: Optional[float] = None
    shipping_cost: Optional[float] = None
    negotiate_price: bool = False
    price_range: Optional[str] = None

    buyer_id: Optional[int] = None
    supplier_id: Optional[int] = None
    buyer_account_manager_id: Optional[int] = None
    supplier_account_manager_id: Optional[int] = None
    matched_by_id: Optional[int] = None
    created_by_id: int

    saved_status: SavedStatus
    status: OrderStatus

    document_type: Optional[DocumentType] = None
    doc_url: Optional[str] = None
    invoice_number: Optional[str] = None
    document_generated_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class OrderDetail(OrderRead):
    documents: list[DocumentRead] = Field(default_factory=list)


class OrderResponse(BaseModel):
    message: str
    order: OrderRead
    notified_user_ids: list[int] = Field(default_factory=list)


class OrderPage(BaseModel):
    orders: list[OrderRead]
    total: int
    page: int
    limit: int
    total_pages: int


class MessageResponse(BaseModel):
    message: str
