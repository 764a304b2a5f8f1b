"""add product listings

Revision ID: 20261017_0002
Revises: 20261017_0001
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_0002_add_products"
down_revision = "20261017_0001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("product", sa.String(length=255), nullable=False),
        sa.Column("capacity", sa.Float(), nullable=False),
        sa.Column("price_per_tonne", sa.Float(), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", name="uq_products_user_id"),
        sa.CheckConstraint("capacity > 0", name="ck_products_capacity_positive"),
        sa.CheckConstraint("price_per_tonne > 0", name="ck_products_price_positive"),
    )
    op.create_index("ix_products_company_name", "products", ["company_name"])


def downgrade() -> None:
    op.drop_index("ix_products_company_name", table_name="products")
    op.drop_table("products")
