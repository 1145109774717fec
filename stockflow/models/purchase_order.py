from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from stockflow.db.base import Base

PURCHASE_ORDER_STATUSES = ("draft", "sent", "confirmed", "received")
OPEN_PURCHASE_ORDER_STATUSES = ("draft", "sent", "confirmed")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PurchaseOrder(Base):
    __tablename__ = "purchase_orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    supplier_id: Mapped[str] = mapped_column(String(36), ForeignKey("suppliers.id"), index=True)
    po_number: Mapped[str] = mapped_column(String(40), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", server_default="draft")
    order_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expected_delivery_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)
    # Bumped by every conditional write so concurrent writers can detect each other.
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "po_number", name="uq_purchase_orders_tenant_po_number"),
        CheckConstraint(
            "status IN ('draft', 'sent', 'confirmed', 'received')",
            name="ck_purchase_orders_status",
        ),
        CheckConstraint("total_amount >= 0", name="ck_purchase_orders_total_non_negative"),
        Index("ix_purchase_orders_tenant_status", "tenant_id", "status"),
        Index("ix_purchase_orders_tenant_supplier", "tenant_id", "supplier_id"),
        Index("ix_purchase_orders_tenant_created_at", "tenant_id", "created_at"),
    )


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    purchase_order_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchase_orders.id"), index=True)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)
    variant_id: Mapped[str] = mapped_column(String(36), ForeignKey("product_variants.id"), index=True)
    variant_sku: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    expected_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    notes: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    __table_args__ = (
        CheckConstraint("quantity_ordered > 0", name="ck_purchase_order_lines_ordered_positive"),
        CheckConstraint("expected_price >= 0", name="ck_purchase_order_lines_price_non_negative"),
        CheckConstraint(
            "quantity_received >= 0 AND quantity_received <= quantity_ordered",
            name="ck_purchase_order_lines_received_within_ordered",
        ),
        Index("ix_purchase_order_lines_tenant_variant", "tenant_id", "variant_id"),
    )


class PurchaseOrderReceipt(Base):
    __tablename__ = "purchase_order_receipts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    purchase_order_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchase_orders.id"), index=True)
    receipt_number: Mapped[str] = mapped_column(String(40), nullable=False)
    receipt_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("tenant_id", "receipt_number", name="uq_purchase_order_receipts_tenant_receipt_number"),
        Index("ix_purchase_order_receipts_tenant_po", "tenant_id", "purchase_order_id"),
    )


class PurchaseOrderReceiptLine(Base):
    __tablename__ = "purchase_order_receipt_lines"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    receipt_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchase_order_receipts.id"), index=True)
    line_id: Mapped[str] = mapped_column(String(36), ForeignKey("purchase_order_lines.id"), index=True)
    quantity_received: Mapped[int] = mapped_column(Integer, nullable=False)
    actual_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (
        UniqueConstraint("receipt_id", "line_id", name="uq_purchase_order_receipt_lines_receipt_line"),
        CheckConstraint("quantity_received > 0", name="ck_purchase_order_receipt_lines_quantity_positive"),
        CheckConstraint("actual_price >= 0", name="ck_purchase_order_receipt_lines_price_non_negative"),
    )
