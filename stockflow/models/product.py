from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
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


class Product(Base):
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    product_code: Mapped[str] = mapped_column(String(60), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "product_code", name="uq_products_tenant_product_code"),
        CheckConstraint("base_price >= 0", name="ck_products_base_price_non_negative"),
        Index("ix_products_tenant_created_at", "tenant_id", "created_at"),
    )


class ProductVariant(Base):
    """
    One sellable SKU. ``stock`` and ``reserved_stock`` are only ever written by the
    conditional update in ``variant_store.apply_delta``.
    """
    __tablename__ = "product_variants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), index=True)

    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[str] = mapped_column(String(50), nullable=False)
    color: Mapped[str] = mapped_column(String(50), nullable=False)

    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    reserved_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_product_variants_tenant_sku"),
        UniqueConstraint(
            "tenant_id",
            "product_id",
            "size",
            "color",
            name="uq_product_variants_tenant_product_size_color",
        ),
        CheckConstraint("stock >= 0", name="ck_product_variants_stock_non_negative"),
        CheckConstraint("reserved_stock >= 0", name="ck_product_variants_reserved_non_negative"),
        CheckConstraint("reserved_stock <= stock", name="ck_product_variants_reserved_within_stock"),
        Index("ix_product_variants_tenant_stock", "tenant_id", "stock"),
    )

    @property
    def available_stock(self) -> int:
        return max(0, self.stock - self.reserved_stock)


class VariantPriceOverride(Base):
    __tablename__ = "variant_price_overrides"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(36), ForeignKey("tenants.id"), index=True)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), index=True)
    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_variant_price_overrides_tenant_sku"),
        CheckConstraint("price >= 0", name="ck_variant_price_overrides_price_non_negative"),
    )
