from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from stockflow.core.errors import NotFoundError
from stockflow.models.product import ProductVariant


@dataclass(frozen=True)
class VariantLevels:
    stock: int
    reserved_stock: int

    @property
    def available_stock(self) -> int:
        return max(0, self.stock - self.reserved_stock)


class PreconditionFailed(Exception):
    """The conditional write matched no row; ``current`` holds the levels seen afterwards."""

    def __init__(self, current: VariantLevels):
        self.current = current
        super().__init__(f"stock={current.stock} reserved={current.reserved_stock}")


def get_variant(db: Session, tenant_id: str, variant_id: str, *, refresh: bool = False) -> ProductVariant:
    stmt = select(ProductVariant).where(
        ProductVariant.tenant_id == tenant_id,
        ProductVariant.id == variant_id,
    )
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    variant = db.execute(stmt).scalar_one_or_none()
    if variant is None:
        raise NotFoundError("Variant", variant_id)
    return variant


def apply_delta(
    db: Session,
    *,
    tenant_id: str,
    variant_id: str,
    stock_delta: int = 0,
    reserved_delta: int = 0,
) -> VariantLevels:
    """Apply both deltas in one guarded UPDATE; the row is untouched unless all bounds hold."""
    new_stock = ProductVariant.stock + stock_delta
    new_reserved = ProductVariant.reserved_stock + reserved_delta
    stmt = (
        update(ProductVariant)
        .where(
            ProductVariant.tenant_id == tenant_id,
            ProductVariant.id == variant_id,
            new_stock >= 0,
            new_reserved >= 0,
            new_reserved <= new_stock,
        )
        .values(stock=new_stock, reserved_stock=new_reserved)
        .returning(ProductVariant.stock, ProductVariant.reserved_stock)
        .execution_options(synchronize_session=False)
    )
    row = db.execute(stmt).first()
    if row is not None:
        return VariantLevels(stock=int(row.stock), reserved_stock=int(row.reserved_stock))

    current = db.execute(
        select(ProductVariant.stock, ProductVariant.reserved_stock).where(
            ProductVariant.tenant_id == tenant_id,
            ProductVariant.id == variant_id,
        )
    ).first()
    if current is None:
        raise NotFoundError("Variant", variant_id)
    raise PreconditionFailed(VariantLevels(stock=int(current.stock), reserved_stock=int(current.reserved_stock)))
