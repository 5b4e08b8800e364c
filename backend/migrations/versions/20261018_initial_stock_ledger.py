"""Stock ledger schema: stores, sarees, allocations, movements, requests, sales, exchanges, promotions

Revision ID: 20261018_stock_ledger
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_stock_ledger"
down_revision = None
branch_labels = None
depends_on = None


NOW = sa.text("(CURRENT_TIMESTAMP)")


def upgrade():
    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("address", sa.Text(), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stores", schema=None) as batch_op:
        batch_op.create_index("ix_stores_active", ["is_active"], unique=False)

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "sarees",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("total_stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("online_stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("distribution_channel", sa.String(8), nullable=False, server_default="both"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("online_stock >= 0", name="ck_sarees_online_stock_nonneg"),
        sa.CheckConstraint("online_stock <= total_stock", name="ck_sarees_online_le_total"),
        sa.CheckConstraint(
            "distribution_channel IN ('online', 'shop', 'both')",
            name="ck_sarees_distribution_channel",
        ),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sarees", schema=None) as batch_op:
        batch_op.create_index("ix_sarees_category", ["category_id"], unique=False)
        batch_op.create_index("ix_sarees_active_channel", ["is_active", "distribution_channel"], unique=False)

    op.create_table(
        "store_inventory",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("saree_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_store_inventory_quantity_nonneg"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["saree_id"], ["sarees.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("store_id", "saree_id", name="uq_store_inventory_store_saree"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("store_inventory", schema=None) as batch_op:
        batch_op.create_index("ix_store_inventory_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_store_inventory_saree", ["saree_id"], unique=False)

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("saree_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(16), nullable=False),
        sa.Column("source", sa.String(16), nullable=False),
        sa.Column("order_ref_id", sa.String(64), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity <> 0", name="ck_stock_movements_quantity_nonzero"),
        sa.ForeignKeyConstraint(["saree_id"], ["sarees.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_movements", schema=None) as batch_op:
        batch_op.create_index("ix_stock_movements_saree_created", ["saree_id", "created_at"], unique=False)
        batch_op.create_index("ix_stock_movements_store_created", ["store_id", "created_at"], unique=False)
        batch_op.create_index("ix_stock_movements_order_ref", ["order_ref_id"], unique=False)
        batch_op.create_index("ix_stock_movements_movement_type", ["movement_type"], unique=False)
        batch_op.create_index("ix_stock_movements_source", ["source"], unique=False)
        batch_op.create_index("ix_stock_movements_created_at", ["created_at"], unique=False)

    op.create_table(
        "stock_requests",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("saree_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("requested_by", sa.Integer(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("received_by", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dispatched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("quantity > 0", name="ck_stock_requests_quantity_pos"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'dispatched', 'received')",
            name="ck_stock_requests_status",
        ),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["saree_id"], ["sarees.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_requests", schema=None) as batch_op:
        batch_op.create_index("ix_stock_requests_store_status", ["store_id", "status"], unique=False)
        batch_op.create_index("ix_stock_requests_saree_id", ["saree_id"], unique=False)
        batch_op.create_index("ix_stock_requests_status", ["status"], unique=False)

    op.create_table(
        "store_sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("sold_by", sa.Integer(), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("customer_phone", sa.String(32), nullable=True),
        sa.Column("sale_type", sa.String(16), nullable=False, server_default="walk_in"),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("sale_type IN ('walk_in', 'reserved')", name="ck_store_sales_sale_type"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("store_sales", schema=None) as batch_op:
        batch_op.create_index("ix_store_sales_store_created", ["store_id", "created_at"], unique=False)

    op.create_table(
        "store_sale_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sale_id", sa.Integer(), nullable=False),
        sa.Column("saree_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("returned_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("quantity > 0", name="ck_store_sale_items_quantity_pos"),
        sa.CheckConstraint(
            "returned_quantity >= 0 AND returned_quantity <= quantity",
            name="ck_store_sale_items_returned_bounds",
        ),
        sa.ForeignKeyConstraint(["sale_id"], ["store_sales.id"]),
        sa.ForeignKeyConstraint(["saree_id"], ["sarees.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("store_sale_items", schema=None) as batch_op:
        batch_op.create_index("ix_store_sale_items_sale_id", ["sale_id"], unique=False)
        batch_op.create_index("ix_store_sale_items_saree_id", ["saree_id"], unique=False)

    op.create_table(
        "store_exchanges",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("original_sale_id", sa.Integer(), nullable=False),
        sa.Column("processed_by", sa.Integer(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("return_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("new_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["original_sale_id"], ["store_sales.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("store_exchanges", schema=None) as batch_op:
        batch_op.create_index("ix_store_exchanges_store_created", ["store_id", "created_at"], unique=False)
        batch_op.create_index("ix_store_exchanges_original_sale_id", ["original_sale_id"], unique=False)

    op.create_table(
        "store_exchange_return_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("exchange_id", sa.Integer(), nullable=False),
        sa.Column("sale_item_id", sa.Integer(), nullable=False),
        sa.Column("saree_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_exchange_return_items_quantity_pos"),
        sa.ForeignKeyConstraint(["exchange_id"], ["store_exchanges.id"]),
        sa.ForeignKeyConstraint(["sale_item_id"], ["store_sale_items.id"]),
        sa.ForeignKeyConstraint(["saree_id"], ["sarees.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("store_exchange_return_items", schema=None) as batch_op:
        batch_op.create_index("ix_store_exchange_return_items_exchange_id", ["exchange_id"], unique=False)
        batch_op.create_index("ix_store_exchange_return_items_sale_item_id", ["sale_item_id"], unique=False)

    op.create_table(
        "store_exchange_new_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("exchange_id", sa.Integer(), nullable=False),
        sa.Column("saree_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_exchange_new_items_quantity_pos"),
        sa.ForeignKeyConstraint(["exchange_id"], ["store_exchanges.id"]),
        sa.ForeignKeyConstraint(["saree_id"], ["sarees.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("store_exchange_new_items", schema=None) as batch_op:
        batch_op.create_index("ix_store_exchange_new_items_exchange_id", ["exchange_id"], unique=False)

    op.create_table(
        "promotions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("offer_type", sa.String(16), nullable=False),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("max_discount_cents", sa.Integer(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("valid_from", sa.DateTime(), nullable=False),
        sa.Column("valid_until", sa.DateTime(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("promotions", schema=None) as batch_op:
        batch_op.create_index("ix_promotions_active_window", ["is_active", "valid_from", "valid_until"], unique=False)
        batch_op.create_index("ix_promotions_category_id", ["category_id"], unique=False)

    op.create_table(
        "promotion_products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("promotion_id", sa.Integer(), nullable=False),
        sa.Column("saree_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["promotion_id"], ["promotions.id"]),
        sa.ForeignKeyConstraint(["saree_id"], ["sarees.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("promotion_id", "saree_id", name="uq_promotion_products_pair"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("promotion_products", schema=None) as batch_op:
        batch_op.create_index("ix_promotion_products_promotion_id", ["promotion_id"], unique=False)
        batch_op.create_index("ix_promotion_products_saree_id", ["saree_id"], unique=False)


def downgrade():
    for table in (
        "promotion_products",
        "promotions",
        "store_exchange_new_items",
        "store_exchange_return_items",
        "store_exchanges",
        "store_sale_items",
        "store_sales",
        "stock_requests",
        "stock_movements",
        "store_inventory",
        "sarees",
        "categories",
        "stores",
    ):
        op.drop_table(table)
