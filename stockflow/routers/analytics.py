from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockflow.core.api_docs import error_responses
from stockflow.core.config import settings
from stockflow.core.deps import get_db
from stockflow.core.permissions import require_permission, require_roles
from stockflow.core.tenancy import RequestContext
from stockflow.schemas.analytics import (
    DashboardOut,
    InventoryValueOut,
    LowStockItemOut,
    LowStockOut,
    MovementSeriesOut,
    MovementSeriesPointOut,
    TopSellerOut,
    TopSellersOut,
)
from stockflow.services import analytics_service
from stockflow.services.analytics_service import (
    InventoryValuation,
    LowStockItem,
    MovementSeriesPoint,
    TopSeller,
)

router = APIRouter(prefix="/analytics", tags=["analytics"])

VALUATION_ROLES = ("owner", "manager")


def _value_out(valuation: InventoryValuation) -> InventoryValueOut:
    return InventoryValueOut(
        total_value=float(valuation.total_value),
        total_units=valuation.total_units,
        variant_count=valuation.variant_count,
    )


def _low_stock_out(item: LowStockItem) -> LowStockItemOut:
    return LowStockItemOut(
        variant_id=item.variant_id,
        variant_sku=item.variant_sku,
        product_id=item.product_id,
        product_name=item.product_name,
        product_code=item.product_code,
        size=item.size,
        color=item.color,
        current_stock=item.current_stock,
        reserved_stock=item.reserved_stock,
        available_stock=item.available_stock,
        pending_quantity=item.pending_quantity,
        total_available=item.total_available,
        price=float(item.price),
        is_low_stock=item.is_low_stock,
    )


def _top_seller_out(seller: TopSeller) -> TopSellerOut:
    return TopSellerOut(
        product_id=seller.product_id,
        product_name=seller.product_name,
        product_code=seller.product_code,
        base_price=float(seller.base_price),
        total_quantity_sold=seller.total_quantity_sold,
    )


def _series_point_out(point: MovementSeriesPoint) -> MovementSeriesPointOut:
    return MovementSeriesPointOut(
        date=point.day,
        purchase=point.totals["purchase"],
        sale=point.totals["sale"],
        return_=point.totals["return"],
        adjustment=point.totals["adjustment"],
    )


@router.get(
    "/dashboard",
    response_model=DashboardOut,
    summary="Inventory dashboard",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def get_dashboard(
    low_stock_threshold: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("analytics.view")),
):
    dashboard = analytics_service.dashboard(
        db,
        tenant_id=context.tenant_id,
        threshold=low_stock_threshold,
        include_valuation=context.role in VALUATION_ROLES,
    )
    valuation = dashboard.inventory_value
    return DashboardOut(
        inventory_value=_value_out(valuation) if valuation is not None else None,
        low_stock_items=[_low_stock_out(item) for item in dashboard.low_stock_items],
        top_sellers=[_top_seller_out(seller) for seller in dashboard.top_sellers],
        movement_series=[_series_point_out(point) for point in dashboard.movement_series],
    )


@router.get(
    "/inventory-value",
    response_model=InventoryValueOut,
    summary="Total inventory valuation",
    dependencies=[Depends(require_roles(*VALUATION_ROLES))],
    responses=error_responses(401, 403, 404, 500),
)
def get_inventory_value(
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("analytics.view")),
):
    return _value_out(analytics_service.inventory_value(db, tenant_id=context.tenant_id))


@router.get(
    "/low-stock",
    response_model=LowStockOut,
    summary="Low stock variants with pending purchase order quantities",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def get_low_stock(
    threshold: int | None = Query(default=None, ge=0),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("analytics.view")),
):
    resolved = settings.low_stock_default_threshold if threshold is None else threshold
    items = analytics_service.low_stock(db, tenant_id=context.tenant_id, threshold=resolved)
    return LowStockOut(threshold=resolved, items=[_low_stock_out(item) for item in items])


@router.get(
    "/top-sellers",
    response_model=TopSellersOut,
    summary="Best selling products over a trailing window",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def get_top_sellers(
    days: int | None = Query(default=None, ge=1, le=366),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("analytics.view")),
):
    resolved = settings.top_sellers_window_days if days is None else days
    sellers = analytics_service.top_sellers(db, tenant_id=context.tenant_id, days=resolved)
    return TopSellersOut(days=resolved, items=[_top_seller_out(seller) for seller in sellers])


@router.get(
    "/movement-series",
    response_model=MovementSeriesOut,
    summary="Daily movement totals per type",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def get_movement_series(
    days: int | None = Query(default=None, ge=1, le=366),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("analytics.view")),
):
    resolved = settings.movement_series_days if days is None else days
    points = analytics_service.movement_series(db, tenant_id=context.tenant_id, days=resolved)
    return MovementSeriesOut(days=resolved, items=[_series_point_out(point) for point in points])
