from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from revas.models import DocumentCloseReason, DocumentStatus, DocumentType


class DocumentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    order_id: int
    doc_type: DocumentType
    status: DocumentStatus
    invoice_number: str
    file_url: Optional[str] = None
    generated_by_id: Optional[int] = None
    generated_at: Optional[datetime] = None
    signed_by_buyer_at: Optional[datetime] = None
    signed_by_supplier_at: Optional[datetime] = None
    buyer_signed_url: Optional[str] = None
    supplier_signed_url: Optional[str] = None
    closed_at: Optional[datetime] = None
    close_reason: Optional[DocumentCloseReason] = None
    created_at: datetime
    updated_at: datetime


class DocumentGenerateResponse(BaseModel):
    message: str
    is_existing: bool
    document: DocumentRead
    documents_complete: bool = False


class SigningStatusRead(BaseModel):
    document_id: int
    status: DocumentStatus
    signed_by_buyer: bool
    signed_by_supplier: bool


class SignResponse(BaseModel):
    message: str
    document: DocumentRead
    fully_signed: bool
    notified_user_ids: list[int] = Field(default_factory=list)


class DocumentCloseRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class DocumentCloseResponse(BaseModel):
    message: str
    document: DocumentRead


class DocumentList(BaseModel):
    documents: list[DocumentRead]
    total: int


DownloadVariant = Literal["original", "buyer_signed", "supplier_signed"]


class DownloadUrlRead(BaseModel):
    document_id: int
    variant: DownloadVariant
    url: str
    expires_in: int
