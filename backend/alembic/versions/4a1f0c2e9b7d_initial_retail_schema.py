"""initial retail schema (catalog, sales, invoice sequence, stock movements)

Revision ID: 4a1f0c2e9b7d
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "4a1f0c2e9b7d"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ROLE = sa.Enum("admin", "employee", name="role")
SALE_STATUS = sa.Enum("pending", "completed", "cancelled", name="sale_status")
# les enums Python sont persistés par nom
MOVEMENT_TYPE = sa.Enum("sale", "sale_reversal", "restock", "adjustment", name="movement_type")

PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", PK, primary_key=True),
        sa.Column("sku", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100)),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("stock_min", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("price >= 0", name="ck_product_price_nonneg"),
        sa.CheckConstraint("stock >= 0", name="ck_product_stock_nonneg"),
        sa.CheckConstraint("stock_min >= 0", name="ck_product_stock_min_nonneg"),
    )

    op.create_table(
        "users",
        sa.Column("id", PK, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("role", ROLE, nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "sales",
        sa.Column("id", PK, primary_key=True),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_email", sa.String(255)),
        sa.Column("customer_phone", sa.String(20)),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", SALE_STATUS, nullable=False),
        sa.Column("invoice_number", sa.String(32), nullable=False, unique=True),
        sa.Column("seller_id", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.CheckConstraint("total >= 0", name="ck_sale_total_nonneg"),
    )
    op.create_index("ix_sales_seller_id", "sales", ["seller_id"])
    op.create_index("ix_sales_status_created", "sales", ["status", "created_at"])

    op.create_table(
        "sale_lines",
        sa.Column("id", PK, primary_key=True),
        sa.Column("sale_id", sa.BigInteger(), sa.ForeignKey("sales.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint("quantity >= 1 AND quantity <= 1000", name="ck_sale_line_qty_1_1000"),
        sa.CheckConstraint("unit_price >= 0", name="ck_sale_line_unit_price_nonneg"),
    )
    op.create_index("ix_sale_lines_sale_id", "sale_lines", ["sale_id"])
    op.create_index("ix_sale_lines_product_id", "sale_lines", ["product_id"])

    op.create_table(
        "invoice_sequences",
        sa.Column("year", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("last_value", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("last_value >= 0", name="ck_invoice_seq_nonneg"),
    )

    op.create_table(
        "stock_movements",
        sa.Column("id", PK, primary_key=True),
        sa.Column("product_id", sa.BigInteger(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("sale_id", sa.BigInteger(), sa.ForeignKey("sales.id", ondelete="RESTRICT")),
        sa.Column("movement_type", MOVEMENT_TYPE, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("stock_after", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(255)),
        sa.Column("created_by", sa.BigInteger(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("idempotency_key", sa.String(64), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movement_qty_pos"),
        sa.CheckConstraint("stock_after >= 0", name="ck_stock_movement_after_nonneg"),
    )
    op.create_index("ix_stock_movements_product_id", "stock_movements", ["product_id"])
    op.create_index("ix_stock_movements_sale_id", "stock_movements", ["sale_id"])
    op.create_index("ix_stock_movements_product_time", "stock_movements", ["product_id", "created_at"])


def downgrade() -> None:
    op.drop_table("stock_movements")
    op.drop_table("invoice_sequences")
    op.drop_table("sale_lines")
    op.drop_table("sales")
    op.drop_table("users")
    op.drop_table("products")

    bind = op.get_bind()
    MOVEMENT_TYPE.drop(bind, checkfirst=True)
    SALE_STATUS.drop(bind, checkfirst=True)
    ROLE.drop(bind, checkfirst=True)
