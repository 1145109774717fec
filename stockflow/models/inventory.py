from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockflow.db.base import Base

MOVEMENT_TYPES = ("purchase", "sale", "return", "adjustment")
REFERENCE_TYPES = ("order", "purchase_order")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StockMovement(Base):
    """
    One row per stock change. Positive = stock in. Negative = stock out.
    Rows are append-only; nothing in the codebase updates or deletes them.
    """
    __tablename__ = "stock_movements"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), index=True)
    variant_id: Mapped[str] = mapped_column(String(36), ForeignKey("product_variants.id"), index=True)
    variant_sku: Mapped[str] = mapped_column(String(100), nullable=False)

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_stock: Mapped[int] = mapped_column(Integer, nullable=False)
    new_stock: Mapped[int] = mapped_column(Integer, nullable=False)

    reference_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    reference_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by: Mapped[str] = mapped_column(String(36), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            "movement_type IN ('purchase', 'sale', 'return', 'adjustment')",
            name="ck_stock_movements_movement_type",
        ),
        CheckConstraint("new_stock = previous_stock + quantity", name="ck_stock_movements_delta_consistent"),
        Index("ix_stock_movements_tenant_created_at", "tenant_id", "created_at"),
        Index("ix_stock_movements_tenant_variant_created_at", "tenant_id", "variant_id", "created_at"),
        Index("ix_stock_movements_tenant_product_created_at", "tenant_id", "product_id", "created_at"),
        Index("ix_stock_movements_tenant_type_created_at", "tenant_id", "movement_type", "created_at"),
    )
