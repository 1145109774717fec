from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from stockflow.core.api_docs import error_responses
from stockflow.core.deps import get_db, get_event_notifier
from stockflow.core.permissions import require_permission
from stockflow.core.tenancy import RequestContext
from stockflow.models.inventory import StockMovement
from stockflow.schemas.common import PaginationMeta
from stockflow.schemas.inventory import (
    FulfillmentIn,
    ReservationIn,
    StockHistoryOut,
    StockLevelOut,
    StockMovementIn,
    StockMovementListOut,
    StockMovementOut,
)
from stockflow.services import movement_ledger, stock_service
from stockflow.services.event_notifier import EventNotifier
from stockflow.services.variant_store import VariantLevels, get_variant

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _movement_out(movement: StockMovement) -> StockMovementOut:
    return StockMovementOut(
        id=movement.id,
        product_id=movement.product_id,
        variant_id=movement.variant_id,
        variant_sku=movement.variant_sku,
        movement_type=movement.movement_type,
        quantity=movement.quantity,
        previous_stock=movement.previous_stock,
        new_stock=movement.new_stock,
        reference_id=movement.reference_id,
        reference_type=movement.reference_type,
        notes=movement.notes,
        created_by=movement.created_by,
        created_at=movement.created_at,
    )


def _levels_out(variant_id: str, sku: str, levels: VariantLevels) -> StockLevelOut:
    return StockLevelOut(
        variant_id=variant_id,
        sku=sku,
        stock=levels.stock,
        reserved_stock=levels.reserved_stock,
        available_stock=levels.available_stock,
    )


@router.post(
    "/movements",
    response_model=StockMovementOut,
    status_code=201,
    summary="Record a stock movement",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def create_movement(
    payload: StockMovementIn,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("inventory.adjust")),
    notifier: EventNotifier = Depends(get_event_notifier),
):
    movement = stock_service.mutate_stock(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        variant_id=payload.variant_id,
        quantity=payload.quantity,
        movement_type=payload.movement_type,
        reference_id=payload.reference_id,
        reference_type=payload.reference_type,
        notes=payload.notes,
        notifier=notifier,
    )
    return _movement_out(movement)


@router.get(
    "/movements",
    response_model=StockMovementListOut,
    summary="List stock movements",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def list_movements(
    product_id: str | None = Query(default=None),
    sku: str | None = Query(default=None),
    movement_type: Literal["purchase", "sale", "return", "adjustment"] | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Pagination offset"),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("inventory.view")),
):
    movements, total = movement_ledger.query_by_tenant(
        db,
        tenant_id=context.tenant_id,
        filters=movement_ledger.MovementFilters(
            product_id=product_id,
            sku=sku,
            movement_type=movement_type,
            start=start_date,
            end=end_date,
        ),
        limit=limit,
        offset=offset,
    )
    return StockMovementListOut(
        items=[_movement_out(movement) for movement in movements],
        pagination=PaginationMeta.build(total=total, limit=limit, offset=offset, count=len(movements)),
    )


@router.get(
    "/variants/{variant_id}",
    response_model=StockLevelOut,
    summary="Get variant stock levels",
    responses=error_responses(401, 403, 404, 500),
)
def get_stock(
    variant_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("inventory.view")),
):
    variant = get_variant(db, context.tenant_id, variant_id, refresh=True)
    return _levels_out(
        variant.id,
        variant.sku,
        VariantLevels(stock=variant.stock, reserved_stock=variant.reserved_stock),
    )


@router.get(
    "/variants/{variant_id}/history",
    response_model=StockHistoryOut,
    summary="Get variant movement history",
    responses=error_responses(401, 403, 404, 422, 500),
)
def get_history(
    variant_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("inventory.view")),
):
    history = movement_ledger.stock_history(
        db,
        tenant_id=context.tenant_id,
        variant_id=variant_id,
        limit=limit,
        offset=offset,
    )
    variant = history.variant
    return StockHistoryOut(
        variant_id=variant.id,
        product_id=variant.product_id,
        sku=variant.sku,
        size=variant.size,
        color=variant.color,
        stock=variant.stock,
        reserved_stock=variant.reserved_stock,
        available_stock=variant.available_stock,
        movements=[_movement_out(movement) for movement in history.movements],
        pagination=PaginationMeta.build(
            total=history.total,
            limit=limit,
            offset=offset,
            count=len(history.movements),
        ),
    )


@router.post(
    "/variants/{variant_id}/reserve",
    response_model=StockLevelOut,
    summary="Reserve available stock",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def reserve(
    variant_id: str,
    payload: ReservationIn,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("inventory.reserve")),
    notifier: EventNotifier = Depends(get_event_notifier),
):
    levels = stock_service.reserve_stock(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        variant_id=variant_id,
        quantity=payload.quantity,
        notifier=notifier,
    )
    return _levels_out(variant_id, get_variant(db, context.tenant_id, variant_id).sku, levels)


@router.post(
    "/variants/{variant_id}/release",
    response_model=StockLevelOut,
    summary="Release reserved stock",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def release(
    variant_id: str,
    payload: ReservationIn,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("inventory.reserve")),
    notifier: EventNotifier = Depends(get_event_notifier),
):
    levels = stock_service.release_stock(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        variant_id=variant_id,
        quantity=payload.quantity,
        notifier=notifier,
    )
    return _levels_out(variant_id, get_variant(db, context.tenant_id, variant_id).sku, levels)


@router.post(
    "/variants/{variant_id}/fulfill",
    response_model=StockMovementOut,
    summary="Ship reserved stock",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def fulfill(
    variant_id: str,
    payload: FulfillmentIn,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("inventory.adjust")),
    notifier: EventNotifier = Depends(get_event_notifier),
):
    movement = stock_service.fulfill_stock(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        variant_id=variant_id,
        quantity=payload.quantity,
        reference_id=payload.reference_id,
        notes=payload.notes,
        notifier=notifier,
    )
    return _movement_out(movement)
