# ruff: noqa: E501
from datetime import datetime, timezone
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    and_,
    case,
    func,
    or_,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from revas.database import Base
from revas.models.signing import (
    FullySigned,
    PartiallySigned,
    SigningParty,
    SigningState,
    signing_state_from,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AccountManagerRole(PyEnum):
    buyer = "buyer"
    supplier = "supplier"

    @property
    def opposite(self) -> "AccountManagerRole":
        return AccountManagerRole.supplier if self is AccountManagerRole.buyer else AccountManagerRole.buyer


class ClientType(PyEnum):
    Buyer = "Buyer"
    Supplier = "Supplier"


class SavedStatus(PyEnum):
    draft = "draft"
    confirmed = "confirmed"


class OrderStatus(PyEnum):
    not_matched = "not_matched"
    matched = "matched"
    document_phase = "document_phase"
    processing = "processing"
    completed = "completed"


class DocumentType(PyEnum):
    sales_order = "sales_order"
    purchase_order = "purchase_order"


class DocumentStatus(PyEnum):
    draft = "draft"
    generated = "generated"
    pending_signatures = "pending_signatures"
    partially_signed = "partially_signed"
    fully_signed = "fully_signed"
    expired = "expired"


class DocumentCloseReason(PyEnum):
    expired = "expired"
    declined = "declined"


class DocumentGenerationOutcome(PyEnum):
    created = "created"
    existing = "existing"
    regenerated = "regenerated"


class NotificationType(PyEnum):
    order_created = "order_created"
    status_changed = "status_changed"
    document_generated = "document_generated"
    signature_requested = "signature_requested"
    signature_completed = "signature_completed"
    order_processing = "order_processing"
    order_completed = "order_completed"
    submission_declined = "submission_declined"
    submission_expired = "submission_expired"


# Each account manager role works for exactly one client type.
CLIENT_TYPE_FOR_ROLE = {
    AccountManagerRole.buyer: ClientType.Buyer,
    AccountManagerRole.supplier: ClientType.Supplier,
}

# Buyer side records the sale, supplier side records the purchase.
DOCUMENT_TYPE_FOR_ROLE = {
    AccountManagerRole.buyer: DocumentType.sales_order,
    AccountManagerRole.supplier: DocumentType.purchase_order,
}

DOCUMENT_TYPE_FOR_PARTY = {
    SigningParty.buyer: DocumentType.sales_order,
    SigningParty.supplier: DocumentType.purchase_order,
}


class AccountManagerClient(Base):
    __tablename__ = "account_manager_clients"

    manager_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    client_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)

    # Exactly one of these is set: account managers carry a role, end users a client type.
    account_manager_role: Mapped[AccountManagerRole | None] = mapped_column(
        Enum(AccountManagerRole, name="account_manager_role"), nullable=True, index=True
    )
    client_type: Mapped[ClientType | None] = mapped_column(
        Enum(ClientType, name="client_type"), nullable=True, index=True
    )
    job_title: Mapped[str | None] = mapped_column(String(128), nullable=True)
    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )

    managed_clients = relationship(
        "User",
        secondary="account_manager_clients",
        primaryjoin="User.id == AccountManagerClient.manager_id",
        secondaryjoin="User.id == AccountManagerClient.client_id",
        order_by="User.id",
        viewonly=True,
    )

    __table_args__ = (
        CheckConstraint(
            "(account_manager_role IS NULL) <> (client_type IS NULL)",
            name="ck_users_role_xor_client_type",
        ),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_account_manager(self) -> bool:
        return self.account_manager_role is not None


class Product(Base):
    """A client's marketplace listing; each client registers at most one."""

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    company_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    product: Mapped[str] = mapped_column(String(255), nullable=False)
    capacity: Mapped[float] = mapped_column(Float, nullable=False)  # tonnes
    price_per_tonne: Mapped[float] = mapped_column(Float, nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
    )

    user = relationship("User")

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_products_capacity_positive"),
        CheckConstraint("price_per_tonne > 0", name="ck_products_price_positive"),
    )


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Commercial terms
    product: Mapped[list | None] = mapped_column(JSON, nullable=True)
    capacity: Mapped[float | None] = mapped_column(Float, nullable=True)  # tonnes
    price_per_tonne: Mapped[float | None] = mapped_column(Float, nullable=True)
    payment_terms: Mapped[int | None] = mapped_column(Integer, nullable=True)  # % upfront
    shipping_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    buyer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    buyer_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supplier_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supplier_location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supplier_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    shipping_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
    negotiate_price: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    price_range: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Parties
    buyer_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    supplier_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    buyer_account_manager_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )
    supplier_account_manager_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )
    matched_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)

    saved_status: Mapped[SavedStatus] = mapped_column(
        Enum(SavedStatus, name="saved_status"),
        nullable=False,
        default=SavedStatus.confirmed,
        index=True,
    )
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status"),
        nullable=False,
        default=OrderStatus.not_matched,
        index=True,
    )

    # Latest generated document, kept on the order for list views.
    document_type: Mapped[DocumentType | None] = mapped_column(
        Enum(DocumentType, name="document_type"), nullable=True
    )
    doc_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(32), nullable=True)
    document_generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
    )

    buyer = relationship("User", foreign_keys=[buyer_id])
    supplier = relationship("User", foreign_keys=[supplier_id])
    buyer_account_manager = relationship("User", foreign_keys=[buyer_account_manager_id])
    supplier_account_manager = relationship("User", foreign_keys=[supplier_account_manager_id])
    created_by = relationship("User", foreign_keys=[created_by_id])

    documents = relationship(
        "Document",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="Document.id",
    )
    notifications = relationship(
        "Notification",
        back_populates="order",
        cascade="all, delete-orphan",
    )

    def account_manager_id_for(self, role: AccountManagerRole) -> int | None:
        if role is AccountManagerRole.buyer:
            return self.buyer_account_manager_id
        return self.supplier_account_manager_id

    def client_id_for(self, party: SigningParty) -> int | None:
        return self.buyer_id if party is SigningParty.buyer else self.supplier_id

    def document_of_type(self, doc_type: DocumentType) -> "Document | None":
        for doc in self.documents:
            if doc.doc_type == doc_type:
                return doc
        return None


class Document(Base):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    doc_type: Mapped[DocumentType] = mapped_column(
        Enum(DocumentType, name="document_type"), nullable=False
    )
    invoice_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)

    file_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    file_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    file_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)
    generated_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    signed_by_buyer_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    signed_by_supplier_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    buyer_signed_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    buyer_signed_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    supplier_signed_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    supplier_signed_key: Mapped[str | None] = mapped_column(String(512), nullable=True)

    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    close_reason: Mapped[DocumentCloseReason | None] = mapped_column(
        Enum(DocumentCloseReason, name="document_close_reason"), nullable=True
    )
    closed_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        server_default=func.now(),
    )

    order = relationship("Order", back_populates="documents")

    __table_args__ = (UniqueConstraint("order_id", "doc_type", name="uq_documents_order_doc_type"),)

    @property
    def signing_state(self) -> SigningState:
        return signing_state_from(self.signed_by_buyer_at, self.signed_by_supplier_at)

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    @hybrid_property
    def status(self) -> DocumentStatus:
        if self.closed_at is not None:
            return DocumentStatus.expired
        state = self.signing_state
        if isinstance(state, FullySigned):
            return DocumentStatus.fully_signed
        if isinstance(state, PartiallySigned):
            return DocumentStatus.partially_signed
        if self.file_url:
            return DocumentStatus.generated
        return DocumentStatus.draft

    @status.inplace.expression
    @classmethod
    def _status_expression(cls):
        return case(
            (cls.closed_at.is_not(None), DocumentStatus.expired.value),
            (
                and_(cls.signed_by_buyer_at.is_not(None), cls.signed_by_supplier_at.is_not(None)),
                DocumentStatus.fully_signed.value,
            ),
            (
                or_(cls.signed_by_buyer_at.is_not(None), cls.signed_by_supplier_at.is_not(None)),
                DocumentStatus.partially_signed.value,
            ),
            (cls.file_url.is_not(None), DocumentStatus.generated.value),
            else_=DocumentStatus.draft.value,
        )

    def signed_url_for(self, party: SigningParty) -> str | None:
        return self.buyer_signed_url if party is SigningParty.buyer else self.supplier_signed_url


class DocumentGeneration(Base):
    """One row per accepted generate/regenerate request; backs the abuse guard."""

    __tablename__ = "document_generations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    requested_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    doc_type: Mapped[DocumentType] = mapped_column(
        Enum(DocumentType, name="document_type"), nullable=False
    )
    outcome: Mapped[DocumentGenerationOutcome] = mapped_column(
        Enum(DocumentGenerationOutcome, name="document_generation_outcome"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False, index=True
    )


class InvoiceSequence(Base):
    __tablename__ = "invoice_sequences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    prefix: Mapped[str] = mapped_column(String(2), nullable=False)  # SO | PO
    period: Mapped[str] = mapped_column(String(4), nullable=False)  # MMYY
    entity: Mapped[str] = mapped_column(String(3), nullable=False)
    last_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("prefix", "period", "entity", name="uq_invoice_seq_scope"),
    )


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, name="notification_type"), nullable=False, index=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes.
    payload: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    triggered_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, server_default=func.now(), index=True
    )

    order = relationship("Order", back_populates="notifications")
    user = relationship("User", foreign_keys=[user_id])


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    order_id: Mapped[int | None] = mapped_column(
        ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True
    )
    payload_json: Mapped[str | None] = mapped_column(Text)

    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(256), nullable=True)

    idempotency_key: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        unique=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
