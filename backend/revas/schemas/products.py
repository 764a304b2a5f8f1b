from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from revas.schemas.users import UserRead


class ProductFields(BaseModel):
    company_name: str = Field(..., min_length=1, max_length=255)
    product: str = Field(..., min_length=1, max_length=255)
    capacity: float = Field(..., gt=0)
    price_per_tonne: float = Field(..., gt=0)
    location: str = Field(..., min_length=1, max_length=255)


class ProductCreate(ProductFields):
    pass


class ProductRead(ProductFields):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    created_at: datetime


class ProductResponse(BaseModel):
    message: str
    product: ProductRead


class ProductPage(BaseModel):
    products: list[ProductRead]
    total: int
    page: int
    limit: int
    total_pages: int


class ClientWithProductCreate(ProductFields):
    """A new client account registered by its account manager, with its listing."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    job_title: Optional[str] = Field(default=None, max_length=128)


class ClientWithProductResponse(BaseModel):
    message: str
    user: UserRead
    product: ProductRead
    email_status: str
