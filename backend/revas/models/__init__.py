from revas.database import Base
from revas.models.domain import (
    CLIENT_TYPE_FOR_ROLE,
    DOCUMENT_TYPE_FOR_PARTY,
    DOCUMENT_TYPE_FOR_ROLE,
    AccountManagerClient,
    AccountManagerRole,
    AuditLog,
    ClientType,
    Document,
    DocumentCloseReason,
    DocumentGeneration,
    DocumentGenerationOutcome,
    DocumentStatus,
    DocumentType,
    InvoiceSequence,
    Notification,
    NotificationType,
    Order,
    OrderStatus,
    Product,
    SavedStatus,
    User,
    utc_now,
)
from revas.models.signing import (
    FullySigned,
    PartiallySigned,
    SigningParty,
    SigningState,
    Unsigned,
    signing_state_from,
)

__all__ = [
    "Base",
    "CLIENT_TYPE_FOR_ROLE",
    "DOCUMENT_TYPE_FOR_PARTY",
    "DOCUMENT_TYPE_FOR_ROLE",
    "AccountManagerClient",
    "AccountManagerRole",
    "AuditLog",
    "ClientType",
    "Document",
    "DocumentCloseReason",
    "DocumentGeneration",
    "DocumentGenerationOutcome",
    "DocumentStatus",
    "DocumentType",
    "FullySigned",
    "InvoiceSequence",
    "Notification",
    "NotificationType",
    "Order",
    "OrderStatus",
    "PartiallySigned",
    "Product",
    "SavedStatus",
    "SigningParty",
    "SigningState",
    "Unsigned",
    "User",
    "signing_state_from",
    "utc_now",
]
