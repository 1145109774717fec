from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from stockflow.core.errors import ValidationError
from stockflow.core.id_utils import generate_shortuuid, normalize_code
from stockflow.models.inventory import MOVEMENT_TYPES, REFERENCE_TYPES, StockMovement
from stockflow.models.product import ProductVariant
from stockflow.services.variant_store import get_variant


@dataclass(frozen=True)
class MovementFilters:
    product_id: str | None = None
    sku: str | None = None
    movement_type: str | None = None
    start: datetime | None = None
    end: datetime | None = None


@dataclass(frozen=True)
class StockHistory:
    variant: ProductVariant
    movements: list[StockMovement]
    total: int


def append_movement(
    db: Session,
    *,
    tenant_id: str,
    variant: ProductVariant,
    movement_type: str,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    created_by: str,
    reference_id: str | None = None,
    reference_type: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}", movement_type=movement_type)
    if reference_type is not None and reference_type not in REFERENCE_TYPES:
        raise ValidationError(f"Unknown reference type: {reference_type}", reference_type=reference_type)

    movement = StockMovement(
        id=generate_shortuuid(),
        tenant_id=tenant_id,
        product_id=variant.product_id,
        variant_id=variant.id,
        variant_sku=variant.sku,
        movement_type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reference_id=reference_id,
        reference_type=reference_type if reference_id else None,
        notes=notes,
        created_by=created_by,
    )
    db.add(movement)
    return movement


def _paginate(db: Session, stmt: Select, *, limit: int, offset: int) -> tuple[list[StockMovement], int]:
    total = int(db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())
    rows = db.execute(
        stmt.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).offset(offset).limit(limit)
    ).scalars().all()
    return list(rows), total


def query_by_variant(
    db: Session,
    *,
    tenant_id: str,
    variant_id: str,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[StockMovement], int]:
    stmt = select(StockMovement).where(
        StockMovement.tenant_id == tenant_id,
        StockMovement.variant_id == variant_id,
    )
    if start is not None:
        stmt = stmt.where(StockMovement.created_at >= start)
    if end is not None:
        stmt = stmt.where(StockMovement.created_at <= end)
    return _paginate(db, stmt, limit=limit, offset=offset)


def query_by_tenant(
    db: Session,
    *,
    tenant_id: str,
    filters: MovementFilters | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[StockMovement], int]:
    filters = filters or MovementFilters()
    if filters.movement_type is not None and filters.movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {filters.movement_type}", movement_type=filters.movement_type)

    stmt = select(StockMovement).where(StockMovement.tenant_id == tenant_id)
    if filters.product_id:
        stmt = stmt.where(StockMovement.product_id == filters.product_id)
    if filters.sku:
        stmt = stmt.where(StockMovement.variant_sku == normalize_code(filters.sku))
    if filters.movement_type:
        stmt = stmt.where(StockMovement.movement_type == filters.movement_type)
    if filters.start is not None:
        stmt = stmt.where(StockMovement.created_at >= filters.start)
    if filters.end is not None:
        stmt = stmt.where(StockMovement.created_at <= filters.end)
    return _paginate(db, stmt, limit=limit, offset=offset)


def stock_history(
    db: Session,
    *,
    tenant_id: str,
    variant_id: str,
    limit: int = 50,
    offset: int = 0,
) -> StockHistory:
    variant = get_variant(db, tenant_id, variant_id, refresh=True)
    movements, total = query_by_variant(
        db,
        tenant_id=tenant_id,
        variant_id=variant_id,
        limit=limit,
        offset=offset,
    )
    return StockHistory(variant=variant, movements=movements, total=total)


def replay_stock(db: Session, *, tenant_id: str, variant_id: str) -> int:
    stmt = select(func.coalesce(func.sum(StockMovement.quantity), 0)).where(
        StockMovement.tenant_id == tenant_id,
        StockMovement.variant_id == variant_id,
    )
    return int(db.execute(stmt).scalar_one())
