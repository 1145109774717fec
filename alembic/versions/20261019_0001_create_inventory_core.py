"""create inventory core tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _create_tables(inspector: sa.Inspector) -> None:
    if not _table_exists(inspector, "tenants"):
        op.create_table(
            "tenants",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("slug", sa.String(length=120), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
            _created_at(),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("slug"),
        )

    if not _table_exists(inspector, "products"):
        op.create_table(
            "products",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.String(length=1000), nullable=True),
            sa.Column("product_code", sa.String(length=60), nullable=False),
            sa.Column("base_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            _created_at(),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "product_code", name="uq_products_tenant_product_code"),
            sa.CheckConstraint("base_price >= 0", name="ck_products_base_price_non_negative"),
        )

    if not _table_exists(inspector, "product_variants"):
        op.create_table(
            "product_variants",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("sku", sa.String(length=100), nullable=False),
            sa.Column("size", sa.String(length=50), nullable=False),
            sa.Column("color", sa.String(length=50), nullable=False),
            sa.Column("stock", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("reserved_stock", sa.Integer(), nullable=False, server_default="0"),
            _created_at(),
            _updated_at(),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "sku", name="uq_product_variants_tenant_sku"),
            sa.UniqueConstraint(
                "tenant_id",
                "product_id",
                "size",
                "color",
                name="uq_product_variants_tenant_product_size_color",
            ),
            sa.CheckConstraint("stock >= 0", name="ck_product_variants_stock_non_negative"),
            sa.CheckConstraint("reserved_stock >= 0", name="ck_product_variants_reserved_non_negative"),
            sa.CheckConstraint("reserved_stock <= stock", name="ck_product_variants_reserved_within_stock"),
        )

    if not _table_exists(inspector, "variant_price_overrides"):
        op.create_table(
            "variant_price_overrides",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("sku", sa.String(length=100), nullable=False),
            sa.Column("price", sa.Numeric(12, 2), nullable=False),
            _updated_at(),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "sku", name="uq_variant_price_overrides_tenant_sku"),
            sa.CheckConstraint("price >= 0", name="ck_variant_price_overrides_price_non_negative"),
        )

    if not _table_exists(inspector, "suppliers"):
        op.create_table(
            "suppliers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("supplier_code", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("contact_email", sa.String(length=255), nullable=True),
            sa.Column("contact_phone", sa.String(length=50), nullable=True),
            sa.Column("address", sa.String(length=500), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
            sa.Column("notes", sa.String(length=1000), nullable=True),
            _created_at(),
            _updated_at(),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "supplier_code", name="uq_suppliers_tenant_supplier_code"),
        )

    if not _table_exists(inspector, "stock_movements"):
        op.create_table(
            "stock_movements",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("variant_id", sa.String(length=36), nullable=False),
            sa.Column("variant_sku", sa.String(length=100), nullable=False),
            sa.Column("movement_type", sa.String(length=20), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("previous_stock", sa.Integer(), nullable=False),
            sa.Column("new_stock", sa.Integer(), nullable=False),
            sa.Column("reference_id", sa.String(length=36), nullable=True),
            sa.Column("reference_type", sa.String(length=30), nullable=True),
            sa.Column("notes", sa.String(length=255), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            _created_at(),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.ForeignKeyConstraint(["variant_id"], ["product_variants.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "movement_type IN ('purchase', 'sale', 'return', 'adjustment')",
                name="ck_stock_movements_movement_type",
            ),
            sa.CheckConstraint("new_stock = previous_stock + quantity", name="ck_stock_movements_delta_consistent"),
        )

    if not _table_exists(inspector, "purchase_orders"):
        op.create_table(
            "purchase_orders",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("supplier_id", sa.String(length=36), nullable=False),
            sa.Column("po_number", sa.String(length=40), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("order_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("expected_delivery_date", sa.Date(), nullable=True),
            sa.Column("notes", sa.String(length=1000), nullable=True),
            sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            _created_at(),
            _updated_at(),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
            sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("tenant_id", "po_number", name="uq_purchase_orders_tenant_po_number"),
            sa.CheckConstraint(
                "status IN ('draft', 'sent', 'confirmed', 'received')",
                name="ck_purchase_orders_status",
            ),
            sa.CheckConstraint("total_amount >= 0", name="ck_purchase_orders_total_non_negative"),
        )

    if not _table_exists(inspector, "purchase_order_lines"):
        op.create_table(
            "purchase_order_lines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("purchase_order_id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("variant_id", sa.String(length=36), nullable=False),
            sa.Column("variant_sku", sa.String(length=100), nullable=False),
            sa.Column("quantity_ordered", sa.Integer(), nullable=False),
            sa.Column("expected_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("quantity_received", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("notes", sa.String(length=255), nullable=True),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
            sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"]),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.ForeignKeyConstraint(["variant_id"], ["product_variants.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("quantity_ordered > 0", name="ck_purchase_order_lines_ordered_positive"),
            sa.CheckConstraint("expected_price >= 0", name="ck_purchase_order_lines_price_non_negative"),
            sa.CheckConstraint(
                "quantity_received >= 0 AND quantity_received <= quantity_ordered",
                name="ck_purchase_order_lines_received_within_ordered",
            ),
        )

    if not _table_exists(inspector, "purchase_order_receipts"):
        op.create_table(
            "purchase_order_receipts",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("purchase_order_id", sa.String(length=36), nullable=False),
            sa.Column("receipt_number", sa.String(length=40), nullable=False),
            sa.Column("receipt_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("notes", sa.String(length=1000), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            _created_at(),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
            sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "tenant_id",
                "receipt_number",
                name="uq_purchase_order_receipts_tenant_receipt_number",
            ),
        )

    if not _table_exists(inspector, "purchase_order_receipt_lines"):
        op.create_table(
            "purchase_order_receipt_lines",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("receipt_id", sa.String(length=36), nullable=False),
            sa.Column("line_id", sa.String(length=36), nullable=False),
            sa.Column("quantity_received", sa.Integer(), nullable=False),
            sa.Column("actual_price", sa.Numeric(12, 2), nullable=False),
            sa.ForeignKeyConstraint(["receipt_id"], ["purchase_order_receipts.id"]),
            sa.ForeignKeyConstraint(["line_id"], ["purchase_order_lines.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("receipt_id", "line_id", name="uq_purchase_order_receipt_lines_receipt_line"),
            sa.CheckConstraint("quantity_received > 0", name="ck_purchase_order_receipt_lines_quantity_positive"),
            sa.CheckConstraint("actual_price >= 0", name="ck_purchase_order_receipt_lines_price_non_negative"),
        )

    if not _table_exists(inspector, "audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("actor_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=100), nullable=False),
            sa.Column("target_type", sa.String(length=100), nullable=False),
            sa.Column("target_id", sa.String(length=36), nullable=True),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
            _created_at(),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
            sa.PrimaryKeyConstraint("id"),
        )


_INDEXES: tuple[tuple[str, str, list[str]], ...] = (
    ("ix_products_tenant_id", "products", ["tenant_id"]),
    ("ix_products_tenant_created_at", "products", ["tenant_id", "created_at"]),
    ("ix_product_variants_tenant_id", "product_variants", ["tenant_id"]),
    ("ix_product_variants_product_id", "product_variants", ["product_id"]),
    ("ix_product_variants_tenant_stock", "product_variants", ["tenant_id", "stock"]),
    ("ix_variant_price_overrides_tenant_id", "variant_price_overrides", ["tenant_id"]),
    ("ix_variant_price_overrides_product_id", "variant_price_overrides", ["product_id"]),
    ("ix_suppliers_tenant_id", "suppliers", ["tenant_id"]),
    ("ix_suppliers_tenant_created_at", "suppliers", ["tenant_id", "created_at"]),
    ("ix_stock_movements_tenant_id", "stock_movements", ["tenant_id"]),
    ("ix_stock_movements_product_id", "stock_movements", ["product_id"]),
    ("ix_stock_movements_variant_id", "stock_movements", ["variant_id"]),
    ("ix_stock_movements_tenant_created_at", "stock_movements", ["tenant_id", "created_at"]),
    (
        "ix_stock_movements_tenant_variant_created_at",
        "stock_movements",
        ["tenant_id", "variant_id", "created_at"],
    ),
    (
        "ix_stock_movements_tenant_product_created_at",
        "stock_movements",
        ["tenant_id", "product_id", "created_at"],
    ),
    (
        "ix_stock_movements_tenant_type_created_at",
        "stock_movements",
        ["tenant_id", "movement_type", "created_at"],
    ),
    ("ix_purchase_orders_tenant_id", "purchase_orders", ["tenant_id"]),
    ("ix_purchase_orders_supplier_id", "purchase_orders", ["supplier_id"]),
    ("ix_purchase_orders_tenant_status", "purchase_orders", ["tenant_id", "status"]),
    ("ix_purchase_orders_tenant_supplier", "purchase_orders", ["tenant_id", "supplier_id"]),
    ("ix_purchase_orders_tenant_created_at", "purchase_orders", ["tenant_id", "created_at"]),
    ("ix_purchase_order_lines_tenant_id", "purchase_order_lines", ["tenant_id"]),
    ("ix_purchase_order_lines_purchase_order_id", "purchase_order_lines", ["purchase_order_id"]),
    ("ix_purchase_order_lines_variant_id", "purchase_order_lines", ["variant_id"]),
    ("ix_purchase_order_lines_tenant_variant", "purchase_order_lines", ["tenant_id", "variant_id"]),
    ("ix_purchase_order_receipts_tenant_id", "purchase_order_receipts", ["tenant_id"]),
    ("ix_purchase_order_receipts_purchase_order_id", "purchase_order_receipts", ["purchase_order_id"]),
    ("ix_purchase_order_receipts_tenant_po", "purchase_order_receipts", ["tenant_id", "purchase_order_id"]),
    ("ix_purchase_order_receipt_lines_receipt_id", "purchase_order_receipt_lines", ["receipt_id"]),
    ("ix_purchase_order_receipt_lines_line_id", "purchase_order_receipt_lines", ["line_id"]),
    ("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"]),
    ("ix_audit_logs_actor_id", "audit_logs", ["actor_id"]),
    ("ix_audit_logs_tenant_created_at", "audit_logs", ["tenant_id", "created_at"]),
    ("ix_audit_logs_tenant_target", "audit_logs", ["tenant_id", "target_type", "target_id"]),
)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    _create_tables(inspector)

    inspector = sa.inspect(bind)
    for index_name, table_name, columns in _INDEXES:
        if not _table_exists(inspector, table_name):
            continue
        if not _index_exists(inspector, table_name, index_name):
            op.create_index(index_name, table_name, columns, unique=False)


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for index_name, table_name, _ in reversed(_INDEXES):
        if _table_exists(inspector, table_name) and _index_exists(inspector, table_name, index_name):
            op.drop_index(index_name, table_name=table_name)

    for table_name in (
        "audit_logs",
        "purchase_order_receipt_lines",
        "purchase_order_receipts",
        "purchase_order_lines",
        "purchase_orders",
        "stock_movements",
        "suppliers",
        "variant_price_overrides",
        "product_variants",
        "products",
        "tenants",
    ):
        if _table_exists(inspector, table_name):
            op.drop_table(table_name)
