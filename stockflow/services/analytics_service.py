"""Read-only inventory analytics.

Nothing here writes; every figure is derived from committed variant levels,
ledger rows and open purchase order lines at query time.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from stockflow.core.config import settings
from stockflow.core.errors import ValidationError
from stockflow.core.money import ZERO_MONEY, to_money
from stockflow.models.inventory import MOVEMENT_TYPES, StockMovement
from stockflow.models.product import Product, ProductVariant, VariantPriceOverride
from stockflow.models.purchase_order import OPEN_PURCHASE_ORDER_STATUSES, PurchaseOrder, PurchaseOrderLine


@dataclass(frozen=True)
class InventoryValuation:
    total_value: Decimal
    total_units: int
    variant_count: int


@dataclass(frozen=True)
class LowStockItem:
    variant_id: str
    variant_sku: str
    product_id: str
    product_name: str
    product_code: str
    size: str
    color: str
    current_stock: int
    reserved_stock: int
    available_stock: int
    pending_quantity: int
    total_available: int
    price: Decimal
    is_low_stock: bool


@dataclass(frozen=True)
class TopSeller:
    product_id: str
    product_name: str
    product_code: str
    base_price: Decimal
    total_quantity_sold: int


@dataclass(frozen=True)
class MovementSeriesPoint:
    day: date
    totals: dict[str, int]


@dataclass(frozen=True)
class Dashboard:
    inventory_value: InventoryValuation | None
    low_stock_items: list[LowStockItem]
    top_sellers: list[TopSeller]
    movement_series: list[MovementSeriesPoint]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored timestamp is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _effective_price_columns():
    return (
        VariantPriceOverride.price.label("override_price"),
        Product.base_price.label("base_price"),
    )


def _effective_price(override_price, base_price) -> Decimal:
    if override_price is not None:
        return to_money(override_price)
    return to_money(base_price)


def _with_prices(stmt, tenant_id: str):
    return (
        stmt.select_from(ProductVariant)
        .join(Product, and_(Product.id == ProductVariant.product_id, Product.tenant_id == tenant_id))
        .outerjoin(
            VariantPriceOverride,
            and_(
                VariantPriceOverride.tenant_id == tenant_id,
                VariantPriceOverride.sku == ProductVariant.sku,
            ),
        )
        .where(ProductVariant.tenant_id == tenant_id)
    )


def inventory_value(db: Session, *, tenant_id: str) -> InventoryValuation:
    stmt = _with_prices(select(ProductVariant.stock, *_effective_price_columns()), tenant_id)
    total_value = ZERO_MONEY
    total_units = 0
    variant_count = 0
    for stock, override_price, base_price in db.execute(stmt).all():
        total_value += int(stock) * _effective_price(override_price, base_price)
        total_units += int(stock)
        variant_count += 1
    return InventoryValuation(total_value=to_money(total_value), total_units=total_units, variant_count=variant_count)


def low_stock(
    db: Session,
    *,
    tenant_id: str,
    threshold: int | None = None,
    limit: int | None = None,
) -> list[LowStockItem]:
    """Variants under ``threshold`` with the quantity still due on open purchase orders."""
    threshold = settings.low_stock_default_threshold if threshold is None else threshold
    limit = settings.low_stock_result_limit if limit is None else limit
    if threshold < 0:
        raise ValidationError("threshold cannot be negative", field="threshold", value=threshold)

    pending = (
        select(
            PurchaseOrderLine.variant_id.label("variant_id"),
            func.sum(PurchaseOrderLine.quantity_ordered - PurchaseOrderLine.quantity_received).label("pending"),
        )
        .join(
            PurchaseOrder,
            and_(
                PurchaseOrder.id == PurchaseOrderLine.purchase_order_id,
                PurchaseOrder.tenant_id == tenant_id,
            ),
        )
        .where(
            PurchaseOrderLine.tenant_id == tenant_id,
            PurchaseOrder.status.in_(OPEN_PURCHASE_ORDER_STATUSES),
        )
        .group_by(PurchaseOrderLine.variant_id)
        .subquery()
    )

    stmt = (
        _with_prices(select(ProductVariant, Product, *_effective_price_columns()), tenant_id)
        .add_columns(func.coalesce(pending.c.pending, 0).label("pending_quantity"))
        .outerjoin(pending, pending.c.variant_id == ProductVariant.id)
        .where(ProductVariant.stock < threshold)
        .order_by(ProductVariant.stock.asc(), ProductVariant.sku.asc())
        .limit(limit)
        .execution_options(populate_existing=True)
    )

    items: list[LowStockItem] = []
    for variant, product, override_price, base_price, pending_quantity in db.execute(stmt).all():
        pending_quantity = int(pending_quantity or 0)
        total_available = variant.stock + pending_quantity
        items.append(
            LowStockItem(
                variant_id=variant.id,
                variant_sku=variant.sku,
                product_id=product.id,
                product_name=product.name,
                product_code=product.product_code,
                size=variant.size,
                color=variant.color,
                current_stock=variant.stock,
                reserved_stock=variant.reserved_stock,
                available_stock=variant.available_stock,
                pending_quantity=pending_quantity,
                total_available=total_available,
                price=_effective_price(override_price, base_price),
                is_low_stock=total_available < threshold,
            )
        )
    items.sort(key=lambda item: (item.total_available, item.variant_sku))
    return items


def top_sellers(
    db: Session,
    *,
    tenant_id: str,
    days: int | None = None,
    limit: int | None = None,
    as_of: datetime | None = None,
) -> list[TopSeller]:
    days = settings.top_sellers_window_days if days is None else days
    limit = settings.top_sellers_limit if limit is None else limit
    if days <= 0:
        raise ValidationError("days must be greater than zero", field="days", value=days)
    until = _as_utc(as_of or datetime.now(timezone.utc))
    since = until - timedelta(days=days)

    sold = func.sum(func.abs(StockMovement.quantity)).label("total_quantity_sold")
    stmt = (
        select(Product.id, Product.name, Product.product_code, Product.base_price, sold)
        .select_from(StockMovement)
        .join(Product, and_(Product.id == StockMovement.product_id, Product.tenant_id == tenant_id))
        .where(
            StockMovement.tenant_id == tenant_id,
            StockMovement.movement_type == "sale",
            StockMovement.created_at >= since,
            StockMovement.created_at <= until,
        )
        .group_by(Product.id, Product.name, Product.product_code, Product.base_price)
        .order_by(sold.desc(), Product.name.asc())
        .limit(limit)
    )
    return [
        TopSeller(
            product_id=product_id,
            product_name=name,
            product_code=code,
            base_price=to_money(base_price),
            total_quantity_sold=int(total),
        )
        for product_id, name, code, base_price, total in db.execute(stmt).all()
    ]


def movement_series(
    db: Session,
    *,
    tenant_id: str,
    days: int | None = None,
    as_of: datetime | None = None,
) -> list[MovementSeriesPoint]:
    """One zero-filled point per UTC day for the trailing window, oldest first."""
    days = settings.movement_series_days if days is None else days
    if days <= 0:
        raise ValidationError("days must be greater than zero", field="days", value=days)

    end_day = _as_utc(as_of or datetime.now(timezone.utc)).date()
    first_day = end_day - timedelta(days=days - 1)
    window_start = datetime.combine(first_day, time.min, tzinfo=timezone.utc)
    window_end = datetime.combine(end_day + timedelta(days=1), time.min, tzinfo=timezone.utc)

    buckets: dict[date, dict[str, int]] = {
        first_day + timedelta(days=offset): {movement_type: 0 for movement_type in MOVEMENT_TYPES}
        for offset in range(days)
    }
    rows = db.execute(
        select(StockMovement.created_at, StockMovement.movement_type, StockMovement.quantity).where(
            StockMovement.tenant_id == tenant_id,
            StockMovement.created_at >= window_start,
            StockMovement.created_at < window_end,
        )
    ).all()
    for created_at, movement_type, quantity in rows:
        bucket = buckets.get(_as_utc(created_at).date())
        if bucket is not None and movement_type in bucket:
            bucket[movement_type] += abs(int(quantity))

    return [MovementSeriesPoint(day=day, totals=totals) for day, totals in sorted(buckets.items())]


def dashboard(
    db: Session,
    *,
    tenant_id: str,
    threshold: int | None = None,
    as_of: datetime | None = None,
    include_valuation: bool = True,
) -> Dashboard:
    return Dashboard(
        inventory_value=inventory_value(db, tenant_id=tenant_id) if include_valuation else None,
        low_stock_items=low_stock(db, tenant_id=tenant_id, threshold=threshold),
        top_sellers=top_sellers(db, tenant_id=tenant_id, as_of=as_of),
        movement_series=movement_series(db, tenant_id=tenant_id, as_of=as_of),
    )
