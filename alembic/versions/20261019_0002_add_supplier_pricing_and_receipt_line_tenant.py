"""add supplier product pricing, product updated_at and receipt line tenant

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 15:30:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_0002"
down_revision: Union[str, None] = "20261019_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(inspector: sa.Inspector, table_name: str) -> bool:
    return table_name in inspector.get_table_names()


def _column_exists(inspector: sa.Inspector, table_name: str, column_name: str) -> bool:
    return column_name in {column["name"] for column in inspector.get_columns(table_name)}


def _index_exists(inspector: sa.Inspector, table_name: str, index_name: str) -> bool:
    return index_name in {index["name"] for index in inspector.get_indexes(table_name)}


_PRICE_INDEXES = (
    ("ix_supplier_product_prices_tenant_id", ["tenant_id"]),
    ("ix_supplier_product_prices_supplier_id", ["supplier_id"]),
    ("ix_supplier_product_prices_product_id", ["product_id"]),
)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _table_exists(inspector, "supplier_product_prices"):
        op.create_table(
            "supplier_product_prices",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("tenant_id", sa.String(length=36), nullable=False),
            sa.Column("supplier_id", sa.String(length=36), nullable=False),
            sa.Column("product_id", sa.String(length=36), nullable=False),
            sa.Column("price", sa.Numeric(12, 2), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
            sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
            sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint(
                "tenant_id",
                "supplier_id",
                "product_id",
                name="uq_supplier_product_prices_tenant_supplier_product",
            ),
            sa.CheckConstraint("price >= 0", name="ck_supplier_product_prices_price_non_negative"),
        )

    inspector = sa.inspect(bind)
    for index_name, columns in _PRICE_INDEXES:
        if not _index_exists(inspector, "supplier_product_prices", index_name):
            op.create_index(index_name, "supplier_product_prices", columns, unique=False)

    inspector = sa.inspect(bind)
    if _table_exists(inspector, "products") and not _column_exists(inspector, "products", "updated_at"):
        op.add_column(
            "products",
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )

    inspector = sa.inspect(bind)
    if _table_exists(inspector, "purchase_order_receipt_lines"):
        if not _column_exists(inspector, "purchase_order_receipt_lines", "tenant_id"):
            op.add_column(
                "purchase_order_receipt_lines",
                sa.Column("tenant_id", sa.String(length=36), nullable=True),
            )

        op.execute(
            sa.text(
                """
                UPDATE purchase_order_receipt_lines
                SET tenant_id = (
                    SELECT r.tenant_id
                    FROM purchase_order_receipts r
                    WHERE r.id = purchase_order_receipt_lines.receipt_id
                )
                WHERE tenant_id IS NULL
                """
            )
        )
        with op.batch_alter_table("purchase_order_receipt_lines") as batch_op:
            batch_op.alter_column("tenant_id", existing_type=sa.String(length=36), nullable=False)
            batch_op.create_foreign_key(
                "fk_purchase_order_receipt_lines_tenant_id_tenants",
                "tenants",
                ["tenant_id"],
                ["id"],
            )

        inspector = sa.inspect(bind)
        if not _index_exists(
            inspector, "purchase_order_receipt_lines", "ix_purchase_order_receipt_lines_tenant_id"
        ):
            op.create_index(
                "ix_purchase_order_receipt_lines_tenant_id",
                "purchase_order_receipt_lines",
                ["tenant_id"],
                unique=False,
            )


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if _table_exists(inspector, "purchase_order_receipt_lines") and _column_exists(
        inspector, "purchase_order_receipt_lines", "tenant_id"
    ):
        if _index_exists(inspector, "purchase_order_receipt_lines", "ix_purchase_order_receipt_lines_tenant_id"):
            op.drop_index(
                "ix_purchase_order_receipt_lines_tenant_id",
                table_name="purchase_order_receipt_lines",
            )
        with op.batch_alter_table("purchase_order_receipt_lines") as batch_op:
            batch_op.drop_constraint("fk_purchase_order_receipt_lines_tenant_id_tenants", type_="foreignkey")
            batch_op.drop_column("tenant_id")

    inspector = sa.inspect(bind)
    if _table_exists(inspector, "products") and _column_exists(inspector, "products", "updated_at"):
        with op.batch_alter_table("products") as batch_op:
            batch_op.drop_column("updated_at")

    inspector = sa.inspect(bind)
    if _table_exists(inspector, "supplier_product_prices"):
        for index_name, _ in reversed(_PRICE_INDEXES):
            if _index_exists(inspector, "supplier_product_prices", index_name):
                op.drop_index(index_name, table_name="supplier_product_prices")
        op.drop_table("supplier_product_prices")
