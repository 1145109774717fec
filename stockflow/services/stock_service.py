"""Stock mutation engine.

The only code path that changes a variant's on-hand or reserved quantity.
Every public function here is one transaction: the guarded write in
``variant_store.apply_delta`` and the ledger append commit together, and the
``stock_changed`` event goes out only after that commit.
"""

import logging

from sqlalchemy.orm import Session

from stockflow.core.errors import (
    InsufficientAvailableStockError,
    InsufficientReservedStockError,
    InsufficientStockError,
    ValidationError,
)
from stockflow.core.observability import log_event
from stockflow.db.session import atomic
from stockflow.models.inventory import MOVEMENT_TYPES, StockMovement
from stockflow.services.event_notifier import (
    DomainEvent,
    EventNotifier,
    publish_after_commit,
    stock_changed_event,
)
from stockflow.services.movement_ledger import append_movement
from stockflow.services.tenant_service import ensure_active_tenant
from stockflow.services.variant_store import PreconditionFailed, VariantLevels, apply_delta, get_variant

logger = logging.getLogger("stockflow.inventory")

INBOUND_MOVEMENT_TYPES = ("purchase", "return")
OUTBOUND_MOVEMENT_TYPES = ("sale",)


def normalize_quantity(movement_type: str, quantity: int) -> int:
    """Return the signed stock delta for a movement; adjustments keep the caller's sign."""
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(
            f"Unknown movement type: {movement_type}",
            movement_type=movement_type,
            allowed=list(MOVEMENT_TYPES),
        )
    if quantity == 0:
        raise ValidationError("Quantity cannot be zero", field="quantity")
    if movement_type in INBOUND_MOVEMENT_TYPES:
        return abs(quantity)
    if movement_type in OUTBOUND_MOVEMENT_TYPES:
        return -abs(quantity)
    return quantity


def _require_positive(quantity: int) -> None:
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than zero", field="quantity", quantity=quantity)


def _log_change(action: str, *, tenant_id: str, actor_id: str, variant_id: str, **fields) -> None:
    log_event(logger, action, tenant_id=tenant_id, actor_id=actor_id, variant_id=variant_id, **fields)


def apply_movement(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    variant_id: str,
    quantity: int,
    movement_type: str,
    reference_id: str | None = None,
    reference_type: str | None = None,
    notes: str | None = None,
) -> tuple[StockMovement, DomainEvent]:
    """Apply one movement inside the caller's transaction and return it with its pending event.

    Shared by the catalog (opening stock) and receiving paths so they can book
    stock in the same unit of work as their own rows. Never commits.
    """
    signed = normalize_quantity(movement_type, quantity)
    variant = get_variant(db, tenant_id, variant_id)

    try:
        levels = apply_delta(db, tenant_id=tenant_id, variant_id=variant_id, stock_delta=signed)
    except PreconditionFailed as exc:
        raise InsufficientStockError(
            f"Insufficient stock for {variant.sku}: requested {abs(signed)}, on hand {exc.current.stock}",
            variant_id=variant_id,
            sku=variant.sku,
            requested=abs(signed),
            current_stock=exc.current.stock,
            reserved_stock=exc.current.reserved_stock,
        ) from exc

    previous_stock = levels.stock - signed
    movement = append_movement(
        db,
        tenant_id=tenant_id,
        variant=variant,
        movement_type=movement_type,
        quantity=signed,
        previous_stock=previous_stock,
        new_stock=levels.stock,
        created_by=actor_id,
        reference_id=reference_id,
        reference_type=reference_type,
        notes=notes,
    )
    db.flush()

    event = stock_changed_event(
        tenant_id=tenant_id,
        variant_id=variant.id,
        variant_sku=variant.sku,
        product_id=variant.product_id,
        change="movement",
        movement_id=movement.id,
        movement_type=movement_type,
        quantity=signed,
        previous_stock=previous_stock,
        new_stock=levels.stock,
        reserved_stock=levels.reserved_stock,
        reference_id=reference_id,
        reference_type=movement.reference_type,
    )
    return movement, event


def mutate_stock(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    variant_id: str,
    quantity: int,
    movement_type: str,
    notifier: EventNotifier,
    reference_id: str | None = None,
    reference_type: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        movement, event = apply_movement(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            variant_id=variant_id,
            quantity=quantity,
            movement_type=movement_type,
            reference_id=reference_id,
            reference_type=reference_type,
            notes=notes,
        )
        movement_id = movement.id

    _log_change(
        "stock_mutated",
        tenant_id=tenant_id,
        actor_id=actor_id,
        variant_id=variant_id,
        movement_id=movement_id,
        movement_type=movement_type,
        quantity=event.payload["quantity"],
        new_stock=event.payload["new_stock"],
    )
    publish_after_commit(notifier, [event])
    return movement


def reserve_stock(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    variant_id: str,
    quantity: int,
    notifier: EventNotifier,
) -> VariantLevels:
    _require_positive(quantity)
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        variant = get_variant(db, tenant_id, variant_id)
        try:
            levels = apply_delta(db, tenant_id=tenant_id, variant_id=variant_id, reserved_delta=quantity)
        except PreconditionFailed as exc:
            raise InsufficientAvailableStockError(
                f"Insufficient available stock for {variant.sku}: requested {quantity}, "
                f"available {exc.current.available_stock}",
                variant_id=variant_id,
                sku=variant.sku,
                requested=quantity,
                available_stock=exc.current.available_stock,
            ) from exc
        event = stock_changed_event(
            tenant_id=tenant_id,
            variant_id=variant.id,
            variant_sku=variant.sku,
            product_id=variant.product_id,
            change="reserve",
            quantity=quantity,
            previous_stock=levels.stock,
            new_stock=levels.stock,
            reserved_stock=levels.reserved_stock,
        )

    _log_change("stock_reserved", tenant_id=tenant_id, actor_id=actor_id, variant_id=variant_id, quantity=quantity)
    publish_after_commit(notifier, [event])
    return levels


def release_stock(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    variant_id: str,
    quantity: int,
    notifier: EventNotifier,
) -> VariantLevels:
    _require_positive(quantity)
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        variant = get_variant(db, tenant_id, variant_id)
        try:
            levels = apply_delta(db, tenant_id=tenant_id, variant_id=variant_id, reserved_delta=-quantity)
        except PreconditionFailed as exc:
            raise InsufficientReservedStockError(
                f"Insufficient reserved stock for {variant.sku}: requested {quantity}, "
                f"reserved {exc.current.reserved_stock}",
                variant_id=variant_id,
                sku=variant.sku,
                requested=quantity,
                reserved_stock=exc.current.reserved_stock,
            ) from exc
        event = stock_changed_event(
            tenant_id=tenant_id,
            variant_id=variant.id,
            variant_sku=variant.sku,
            product_id=variant.product_id,
            change="release",
            quantity=quantity,
            previous_stock=levels.stock,
            new_stock=levels.stock,
            reserved_stock=levels.reserved_stock,
        )

    _log_change("stock_released", tenant_id=tenant_id, actor_id=actor_id, variant_id=variant_id, quantity=quantity)
    publish_after_commit(notifier, [event])
    return levels


def fulfill_stock(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    variant_id: str,
    quantity: int,
    notifier: EventNotifier,
    reference_id: str | None = None,
    notes: str | None = None,
) -> StockMovement:
    """Ship reserved units: on-hand and reserved drop together and a ``sale`` movement is recorded."""
    _require_positive(quantity)
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        variant = get_variant(db, tenant_id, variant_id)
        try:
            levels = apply_delta(
                db,
                tenant_id=tenant_id,
                variant_id=variant_id,
                stock_delta=-quantity,
                reserved_delta=-quantity,
            )
        except PreconditionFailed as exc:
            raise InsufficientReservedStockError(
                f"Insufficient reserved stock for {variant.sku}: requested {quantity}, "
                f"reserved {exc.current.reserved_stock}",
                variant_id=variant_id,
                sku=variant.sku,
                requested=quantity,
                reserved_stock=exc.current.reserved_stock,
            ) from exc

        reference_type = "order" if reference_id else None
        movement = append_movement(
            db,
            tenant_id=tenant_id,
            variant=variant,
            movement_type="sale",
            quantity=-quantity,
            previous_stock=levels.stock + quantity,
            new_stock=levels.stock,
            created_by=actor_id,
            reference_id=reference_id,
            reference_type=reference_type,
            notes=notes,
        )
        db.flush()
        event = stock_changed_event(
            tenant_id=tenant_id,
            variant_id=variant.id,
            variant_sku=variant.sku,
            product_id=variant.product_id,
            change="fulfill",
            movement_id=movement.id,
            movement_type="sale",
            quantity=-quantity,
            previous_stock=levels.stock + quantity,
            new_stock=levels.stock,
            reserved_stock=levels.reserved_stock,
            reference_id=reference_id,
            reference_type=reference_type,
        )

    _log_change("stock_fulfilled", tenant_id=tenant_id, actor_id=actor_id, variant_id=variant_id, quantity=quantity)
    publish_after_commit(notifier, [event])
    return movement
