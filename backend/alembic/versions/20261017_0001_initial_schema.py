"""initial marketplace schema

Revision ID: 20261017_0001
Revises: None
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261017_0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    "account_manager_role": ("buyer", "supplier"),
    "client_type": ("Buyer", "Supplier"),
    "saved_status": ("draft", "confirmed"),
    "order_status": ("not_matched", "matched", "document_phase", "processing", "completed"),
    "document_type": ("sales_order", "purchase_order"),
    "document_close_reason": ("expired", "declined"),
    "document_generation_outcome": ("created", "existing", "regenerated"),
    "notification_type": (
        "order_created",
        "status_changed",
        "document_generated",
        "signature_requested",
        "signature_completed",
        "order_processing",
        "order_completed",
        "submission_declined",
        "submission_expired",
    ),
}


def upgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"

    if is_postgres:
        # Several tables share document_type; create each type once up front.
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    def _enum(name: str) -> sa.Enum:
        if is_postgres:
            return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)
        return sa.Enum(*ENUMS[name], name=name, native_enum=False, create_constraint=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=128), nullable=False),
        sa.Column("last_name", sa.String(length=128), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("account_manager_role", _enum("account_manager_role"), nullable=True),
        sa.Column("client_type", _enum("client_type"), nullable=True),
        sa.Column("job_title", sa.String(length=128), nullable=True),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "(account_manager_role IS NULL) <> (client_type IS NULL)",
            name="ck_users_role_xor_client_type",
        ),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_account_manager_role", "users", ["account_manager_role"])
    op.create_index("ix_users_client_type", "users", ["client_type"])

    op.create_table(
        "account_manager_clients",
        sa.Column(
            "manager_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "client_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_account_manager_clients_client_id", "account_manager_clients", ["client_id"]
    )

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product", sa.JSON(), nullable=True),
        sa.Column("capacity", sa.Float(), nullable=True),
        sa.Column("price_per_tonne", sa.Float(), nullable=True),
        sa.Column("payment_terms", sa.Integer(), nullable=True),
        sa.Column("shipping_type", sa.String(length=64), nullable=True),
        sa.Column("buyer_name", sa.String(length=255), nullable=True),
        sa.Column("buyer_location", sa.String(length=255), nullable=True),
        sa.Column("supplier_name", sa.String(length=255), nullable=True),
        sa.Column("supplier_location", sa.String(length=255), nullable=True),
        sa.Column("supplier_price", sa.Float(), nullable=True),
        sa.Column("shipping_cost", sa.Float(), nullable=True),
        sa.Column("negotiate_price", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("price_range", sa.String(length=64), nullable=True),
        sa.Column("buyer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("supplier_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("buyer_account_manager_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("supplier_account_manager_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("matched_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("saved_status", _enum("saved_status"), nullable=False),
        sa.Column("status", _enum("order_status"), nullable=False),
        sa.Column("document_type", _enum("document_type"), nullable=True),
        sa.Column("doc_url", sa.String(length=1024), nullable=True),
        sa.Column("invoice_number", sa.String(length=32), nullable=True),
        sa.Column("document_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    for column in (
        "buyer_id",
        "supplier_id",
        "buyer_account_manager_id",
        "supplier_account_manager_id",
        "created_by_id",
        "saved_status",
        "status",
    ):
        op.create_index(f"ix_orders_{column}", "orders", [column])

    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "order_id",
            sa.Integer(),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("doc_type", _enum("document_type"), nullable=False),
        sa.Column("invoice_number", sa.String(length=32), nullable=False),
        sa.Column("file_url", sa.String(length=1024), nullable=True),
        sa.Column("file_key", sa.String(length=512), nullable=True),
        sa.Column("file_sha256", sa.String(length=64), nullable=True),
        sa.Column("generated_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signed_by_buyer_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signed_by_supplier_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("buyer_signed_url", sa.String(length=1024), nullable=True),
        sa.Column("buyer_signed_key", sa.String(length=512), nullable=True),
        sa.Column("supplier_signed_url", sa.String(length=1024), nullable=True),
        sa.Column("supplier_signed_key", sa.String(length=512), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("close_reason", _enum("document_close_reason"), nullable=True),
        sa.Column("closed_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("order_id", "doc_type", name="uq_documents_order_doc_type"),
    )
    op.create_index("ix_documents_order_id", "documents", ["order_id"])
    op.create_index("ix_documents_invoice_number", "documents", ["invoice_number"], unique=True)

    op.create_table(
        "document_generations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "order_id",
            sa.Integer(),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("requested_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("doc_type", _enum("document_type"), nullable=False),
        sa.Column("outcome", _enum("document_generation_outcome"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_document_generations_order_id", "document_generations", ["order_id"])
    op.create_index(
        "ix_document_generations_requested_by_id", "document_generations", ["requested_by_id"]
    )
    op.create_index("ix_document_generations_created_at", "document_generations", ["created_at"])

    op.create_table(
        "invoice_sequences",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("prefix", sa.String(length=2), nullable=False),
        sa.Column("period", sa.String(length=4), nullable=False),
        sa.Column("entity", sa.String(length=3), nullable=False),
        sa.Column("last_seq", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.UniqueConstraint("prefix", "period", "entity", name="uq_invoice_seq_scope"),
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "order_id",
            sa.Integer(),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", _enum("notification_type"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("triggered_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_order_id", "notifications", ["order_id"])
    op.create_index("ix_notifications_type", "notifications", ["type"])
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column(
            "order_id",
            sa.Integer(),
            sa.ForeignKey("orders.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("payload_json", sa.Text(), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("ip", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=256), nullable=True),
        sa.Column("idempotency_key", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_order_id", "audit_logs", ["order_id"])
    op.create_index("ix_audit_logs_request_id", "audit_logs", ["request_id"])
    op.create_index("ix_audit_logs_idempotency_key", "audit_logs", ["idempotency_key"], unique=True)


def downgrade() -> None:
    for table in (
        "audit_logs",
        "notifications",
        "invoice_sequences",
        "document_generations",
        "documents",
        "orders",
        "account_manager_clients",
        "users",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for name in ENUMS:
            postgresql.ENUM(name=name).drop(bind, checkfirst=True)
