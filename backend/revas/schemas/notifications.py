from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from revas.models import NotificationType


class OrderCreatedPayload(BaseModel):
    kind: Literal["order_created"] = "order_created"
    created_by_id: int
    status: str


class StatusChangedPayload(BaseModel):
    kind: Literal["status_changed"] = "status_changed"
    old_status: str
    new_status: str


class OrderProcessingPayload(BaseModel):
    kind: Literal["order_processing"] = "order_processing"
    old_status: str
    new_status: str = "processing"


class OrderCompletedPayload(BaseModel):
    kind: Literal["order_completed"] = "order_completed"
    old_status: str
    new_status: str = "completed"


class DocumentGeneratedPayload(BaseModel):
    kind: Literal["document_generated"] = "document_generated"
    document_ids: list[int]
    invoice_numbers: list[str]


class SignatureRequestedPayload(BaseModel):
    kind: Literal["signature_requested"] = "signature_requested"
    document_id: int
    doc_type: str
    signed_by: str
    awaiting: str


class SignatureCompletedPayload(BaseModel):
    kind: Literal["signature_completed"] = "signature_completed"
    document_ids: list[int]


class SubmissionDeclinedPayload(BaseModel):
    kind: Literal["submission_declined"] = "submission_declined"
    document_id: int
    doc_type: str
    declined_by: str
    reason: Optional[str] = None


class SubmissionExpiredPayload(BaseModel):
    kind: Literal["submission_expired"] = "submission_expired"
    document_id: int
    doc_type: str
    reason: Optional[str] = None


NotificationPayload = Annotated[
    Union[
        OrderCreatedPayload,
        StatusChangedPayload,
        OrderProcessingPayload,
        OrderCompletedPayload,
        DocumentGeneratedPayload,
        SignatureRequestedPayload,
        SignatureCompletedPayload,
        SubmissionDeclinedPayload,
        SubmissionExpiredPayload,
    ],
    Field(discriminator="kind"),
]

notification_payload_adapter: TypeAdapter[NotificationPayload] = TypeAdapter(NotificationPayload)


class NotificationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    order_id: int
    type: NotificationType
    message: str
    metadata: Optional[NotificationPayload] = Field(default=None, validation_alias="payload")
    is_read: bool
    read_at: Optional[datetime] = None
    triggered_by_id: Optional[int] = None
    created_at: datetime


class NotificationPage(BaseModel):
    notifications: list[NotificationRead]
    total: int
    unread_count: int
    page: int
    limit: int
    total_pages: int


class NotificationMessage(BaseModel):
    message: str
    notification: Optional[NotificationRead] = None
    updated: Optional[int] = None
