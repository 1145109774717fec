"""Purchase order workflow: drafting, status transitions and receiving.

Status writes and receipt counters are conditional updates, so two writers
acting on the same order cannot both win. A receipt is a single transaction
spanning the order's version bump, every stock movement, the line counters,
the receipt rows and the auto-close to ``received``.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from stockflow.core.errors import (
    ConcurrentModificationError,
    InvalidTransitionError,
    ManualReceivedNotAllowedError,
    NotFoundError,
    OverReceiptError,
    PurchaseOrderLockedError,
    ReceiptBeforeSendNotAllowedError,
    ValidationError,
)
from stockflow.core.id_utils import generate_shortuuid, optional_code
from stockflow.core.money import ZERO_MONEY, to_money
from stockflow.core.observability import log_event
from stockflow.db.session import atomic
from stockflow.models.purchase_order import (
    PURCHASE_ORDER_STATUSES,
    PurchaseOrder,
    PurchaseOrderLine,
    PurchaseOrderReceipt,
    PurchaseOrderReceiptLine,
)
from stockflow.services.audit_service import log_audit_event
from stockflow.services.catalog_service import get_supplier
from stockflow.services.event_notifier import (
    PURCHASE_ORDER_CREATED,
    PURCHASE_ORDER_STATUS_CHANGED,
    PURCHASE_ORDER_UPDATED,
    RECEIPT_RECORDED,
    DomainEvent,
    EventNotifier,
    publish_after_commit,
    purchase_order_event,
)
from stockflow.services.field_updates import UNSET
from stockflow.services.stock_service import apply_movement
from stockflow.services.tenant_service import ensure_active_tenant
from stockflow.services.variant_store import get_variant

logger = logging.getLogger("stockflow.inventory")

# Transitions a caller may request. ``received`` is only ever reached by record_receipt.
ALLOWED_STATUS_TRANSITIONS: dict[str, set[str]] = {
    "draft": {"draft", "sent"},
    "sent": {"confirmed", "draft"},
    "confirmed": set(),
    "received": set(),
}
RECEIVABLE_STATUSES = ("sent", "confirmed")


@dataclass(frozen=True)
class LineInput:
    variant_id: str
    quantity_ordered: int
    expected_price: Decimal | int | float | str
    notes: str | None = None


@dataclass(frozen=True)
class ReceiptEntryInput:
    line_id: str
    quantity_received: int
    actual_price: Decimal | int | float | str


@dataclass
class LineDetail:
    line: PurchaseOrderLine
    quantity_pending: int
    actual_total: Decimal
    price_variance: Decimal


@dataclass
class ReceiptDetail:
    receipt: PurchaseOrderReceipt
    entries: list[PurchaseOrderReceiptLine]
    total_quantity: int
    total_amount: Decimal


@dataclass
class PurchaseOrderDetail:
    order: PurchaseOrder
    lines: list[LineDetail] = field(default_factory=list)
    receipts: list[ReceiptDetail] = field(default_factory=list)
    expected_total: Decimal = ZERO_MONEY
    actual_total: Decimal = ZERO_MONEY
    price_variance: Decimal = ZERO_MONEY


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _log(action: str, **fields) -> None:
    log_event(logger, action, **fields)


def _next_number(db: Session, *, column, tenant_column, tenant_id: str, prefix: str, today: date) -> str:
    """Generate ``<PREFIX>-YYYYMMDD-NNNN`` by incrementing the day's highest sequence."""
    day_prefix = f"{prefix}-{today.strftime('%Y%m%d')}-"
    existing = db.execute(
        select(column).where(tenant_column == tenant_id, column.like(f"{day_prefix}%"))
    ).scalars().all()
    highest = 0
    for number in existing:
        suffix = number[len(day_prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{day_prefix}{highest + 1:04d}"


def generate_po_number(db: Session, *, tenant_id: str, today: date | None = None) -> str:
    return _next_number(
        db,
        column=PurchaseOrder.po_number,
        tenant_column=PurchaseOrder.tenant_id,
        tenant_id=tenant_id,
        prefix="PO",
        today=today or _utcnow().date(),
    )


def generate_receipt_number(db: Session, *, tenant_id: str, today: date | None = None) -> str:
    return _next_number(
        db,
        column=PurchaseOrderReceipt.receipt_number,
        tenant_column=PurchaseOrderReceipt.tenant_id,
        tenant_id=tenant_id,
        prefix="REC",
        today=today or _utcnow().date(),
    )


def _load_order(db: Session, *, tenant_id: str, po_id: str) -> PurchaseOrder:
    order = db.execute(
        select(PurchaseOrder)
        .where(PurchaseOrder.tenant_id == tenant_id, PurchaseOrder.id == po_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if order is None:
        raise NotFoundError("Purchase order", po_id)
    return order


def _load_lines(db: Session, *, tenant_id: str, po_id: str) -> list[PurchaseOrderLine]:
    stmt = (
        select(PurchaseOrderLine)
        .where(PurchaseOrderLine.tenant_id == tenant_id, PurchaseOrderLine.purchase_order_id == po_id)
        .order_by(PurchaseOrderLine.position.asc(), PurchaseOrderLine.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(db.execute(stmt).scalars().all())


def _build_lines(
    db: Session,
    *,
    tenant_id: str,
    po_id: str,
    lines: list[LineInput],
) -> tuple[list[PurchaseOrderLine], Decimal]:
    if not lines:
        raise ValidationError("A purchase order needs at least one line", field="lines")

    built: list[PurchaseOrderLine] = []
    total = ZERO_MONEY
    for position, item in enumerate(lines):
        if item.quantity_ordered <= 0:
            raise ValidationError(
                "quantity_ordered must be greater than zero",
                field=f"lines[{position}].quantity_ordered",
                value=item.quantity_ordered,
            )
        price = to_money(item.expected_price)
        if price < 0:
            raise ValidationError(
                "expected_price cannot be negative",
                field=f"lines[{position}].expected_price",
                value=str(price),
            )
        variant = get_variant(db, tenant_id, item.variant_id)
        built.append(
            PurchaseOrderLine(
                id=generate_shortuuid(),
                tenant_id=tenant_id,
                purchase_order_id=po_id,
                product_id=variant.product_id,
                variant_id=variant.id,
                variant_sku=variant.sku,
                quantity_ordered=item.quantity_ordered,
                expected_price=price,
                quantity_received=0,
                notes=item.notes,
                position=position,
            )
        )
        total += price * item.quantity_ordered
    return built, to_money(total)


def _bump_version(
    db: Session,
    *,
    tenant_id: str,
    po_id: str,
    statuses: tuple[str, ...],
    expected_version: int | None = None,
    **values,
) -> tuple[str, int] | None:
    stmt = update(PurchaseOrder).where(
        PurchaseOrder.tenant_id == tenant_id,
        PurchaseOrder.id == po_id,
        PurchaseOrder.status.in_(statuses),
    )
    if expected_version is not None:
        stmt = stmt.where(PurchaseOrder.version == expected_version)
    stmt = (
        stmt.values(version=PurchaseOrder.version + 1, updated_at=_utcnow(), **values)
        .returning(PurchaseOrder.status, PurchaseOrder.version)
        .execution_options(synchronize_session=False)
    )
    row = db.execute(stmt).first()
    if row is None:
        return None
    return row.status, int(row.version)


def _locked_error(order: PurchaseOrder) -> PurchaseOrderLockedError:
    return PurchaseOrderLockedError(
        f"Purchase order {order.po_number} is {order.status} and can no longer be edited",
        purchase_order_id=order.id,
        status=order.status,
    )


def _order_payload(order: PurchaseOrder) -> dict:
    return {
        "purchase_order_id": order.id,
        "po_number": order.po_number,
        "supplier_id": order.supplier_id,
        "status": order.status,
        "total_amount": str(to_money(order.total_amount)),
        "version": int(order.version),
    }


def create_purchase_order(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    supplier_id: str,
    lines: list[LineInput],
    notifier: EventNotifier,
    expected_delivery_date: date | None = None,
    notes: str | None = None,
    po_number: str | None = None,
    order_date: datetime | None = None,
) -> PurchaseOrder:
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        supplier = get_supplier(db, tenant_id=tenant_id, supplier_id=supplier_id)
        if supplier.status != "active":
            raise ValidationError(
                "Purchase orders can only be raised against active suppliers",
                supplier_id=supplier.id,
                supplier_status=supplier.status,
            )

        po_id = generate_shortuuid()
        built_lines, total = _build_lines(db, tenant_id=tenant_id, po_id=po_id, lines=lines)
        number = optional_code(po_number) or generate_po_number(db, tenant_id=tenant_id)

        order = PurchaseOrder(
            id=po_id,
            tenant_id=tenant_id,
            supplier_id=supplier.id,
            po_number=number,
            status="draft",
            order_date=order_date or _utcnow(),
            expected_delivery_date=expected_delivery_date,
            notes=notes,
            total_amount=total,
            created_by=actor_id,
            version=1,
        )
        db.add(order)
        db.flush()
        db.add_all(built_lines)
        db.flush()

        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="purchase_order.create",
            target_type="purchase_order",
            target_id=order.id,
            metadata_json={"po_number": number, "supplier_id": supplier.id, "line_count": len(built_lines)},
        )
        event = purchase_order_event(
            PURCHASE_ORDER_CREATED,
            tenant_id=tenant_id,
            line_count=len(built_lines),
            **_order_payload(order),
        )

    _log("purchase_order_created", tenant_id=tenant_id, actor_id=actor_id, purchase_order_id=po_id, po_number=number)
    publish_after_commit(notifier, [event])
    return _load_order(db, tenant_id=tenant_id, po_id=po_id)


def update_purchase_order(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    po_id: str,
    notifier: EventNotifier,
    notes: str | None = UNSET,
    expected_delivery_date: date | None = UNSET,
    lines: list[LineInput] | None = None,
) -> PurchaseOrder:
    """Edit a draft order. ``lines``, when given, replaces every existing line."""
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        order = _load_order(db, tenant_id=tenant_id, po_id=po_id)
        if order.status != "draft":
            raise _locked_error(order)

        values: dict = {}
        changed: list[str] = []
        if notes is not UNSET:
            values["notes"] = notes
            changed.append("notes")
        if expected_delivery_date is not UNSET:
            values["expected_delivery_date"] = expected_delivery_date
            changed.append("expected_delivery_date")

        if lines is not None:
            existing = _load_lines(db, tenant_id=tenant_id, po_id=po_id)
            if any(line.quantity_received > 0 for line in existing):
                raise PurchaseOrderLockedError(
                    "Lines cannot be replaced once goods have been received",
                    purchase_order_id=po_id,
                    status=order.status,
                )
            built_lines, total = _build_lines(db, tenant_id=tenant_id, po_id=po_id, lines=lines)
            values["total_amount"] = total
            changed.append("lines")

        claimed = _bump_version(
            db,
            tenant_id=tenant_id,
            po_id=po_id,
            statuses=("draft",),
            expected_version=order.version,
            **values,
        )
        if claimed is None:
            raise ConcurrentModificationError(
                "Purchase order was modified concurrently",
                purchase_order_id=po_id,
                expected_version=order.version,
            )

        if lines is not None:
            db.execute(
                delete(PurchaseOrderLine)
                .where(PurchaseOrderLine.tenant_id == tenant_id, PurchaseOrderLine.purchase_order_id == po_id)
                .execution_options(synchronize_session=False)
            )
            db.add_all(built_lines)
            db.flush()

        order = _load_order(db, tenant_id=tenant_id, po_id=po_id)
        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="purchase_order.update",
            target_type="purchase_order",
            target_id=po_id,
            metadata_json={"changed": changed, "version": claimed[1]},
        )
        event = purchase_order_event(
            PURCHASE_ORDER_UPDATED,
            tenant_id=tenant_id,
            changed=",".join(changed),
            **_order_payload(order),
        )

    _log("purchase_order_updated", tenant_id=tenant_id, actor_id=actor_id, purchase_order_id=po_id, changed=changed)
    publish_after_commit(notifier, [event])
    return _load_order(db, tenant_id=tenant_id, po_id=po_id)


def delete_purchase_order(db: Session, *, tenant_id: str, actor_id: str, po_id: str) -> None:
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        order = _load_order(db, tenant_id=tenant_id, po_id=po_id)
        if order.status != "draft":
            raise _locked_error(order)
        receipt_count = int(
            db.execute(
                select(func.count(PurchaseOrderReceipt.id)).where(
                    PurchaseOrderReceipt.tenant_id == tenant_id,
                    PurchaseOrderReceipt.purchase_order_id == po_id,
                )
            ).scalar_one()
        )
        if receipt_count:
            raise PurchaseOrderLockedError(
                "Purchase orders with receipts cannot be deleted",
                purchase_order_id=po_id,
                receipt_count=receipt_count,
            )

        db.execute(
            delete(PurchaseOrderLine)
            .where(PurchaseOrderLine.tenant_id == tenant_id, PurchaseOrderLine.purchase_order_id == po_id)
            .execution_options(synchronize_session=False)
        )
        result = db.execute(
            delete(PurchaseOrder)
            .where(
                PurchaseOrder.tenant_id == tenant_id,
                PurchaseOrder.id == po_id,
                PurchaseOrder.status == "draft",
                PurchaseOrder.version == order.version,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError(
                "Purchase order was modified concurrently",
                purchase_order_id=po_id,
                expected_version=order.version,
            )
        db.expunge(order)
        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="purchase_order.delete",
            target_type="purchase_order",
            target_id=po_id,
            metadata_json={"po_number": order.po_number},
        )

    _log("purchase_order_deleted", tenant_id=tenant_id, actor_id=actor_id, purchase_order_id=po_id)


def _ensure_transition_allowed(current: str, requested: str) -> None:
    if requested == "received":
        raise ManualReceivedNotAllowedError(
            "Purchase orders are marked received automatically once every line is received",
            current_status=current,
            requested_status=requested,
        )
    if requested not in PURCHASE_ORDER_STATUSES or requested not in ALLOWED_STATUS_TRANSITIONS.get(current, set()):
        raise InvalidTransitionError(
            f"Cannot move purchase order from {current} to {requested}",
            current_status=current,
            requested_status=requested,
            allowed=sorted(ALLOWED_STATUS_TRANSITIONS.get(current, set())),
        )


def transition_status(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    po_id: str,
    new_status: str,
    notifier: EventNotifier,
    expected_status: str | None = None,
) -> PurchaseOrder:
    """Move an order along the workflow, conditional on the status the caller last saw."""
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        order = _load_order(db, tenant_id=tenant_id, po_id=po_id)
        observed = expected_status or order.status
        if observed != order.status:
            raise ConcurrentModificationError(
                f"Purchase order status is {order.status}, expected {observed}",
                purchase_order_id=po_id,
                expected_status=observed,
                current_status=order.status,
            )
        _ensure_transition_allowed(observed, new_status)

        # draft -> draft keeps the status but still claims a new version.
        claimed = _bump_version(db, tenant_id=tenant_id, po_id=po_id, statuses=(observed,), status=new_status)
        if claimed is None:
            raise ConcurrentModificationError(
                "Purchase order status changed concurrently",
                purchase_order_id=po_id,
                expected_status=observed,
            )

        order = _load_order(db, tenant_id=tenant_id, po_id=po_id)
        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="purchase_order.status",
            target_type="purchase_order",
            target_id=po_id,
            metadata_json={"from": observed, "to": new_status},
        )
        events = []
        if observed != new_status:
            events.append(
                purchase_order_event(
                    PURCHASE_ORDER_STATUS_CHANGED,
                    tenant_id=tenant_id,
                    previous_status=observed,
                    **_order_payload(order),
                )
            )

    _log(
        "purchase_order_status_changed",
        tenant_id=tenant_id,
        actor_id=actor_id,
        purchase_order_id=po_id,
        previous_status=observed,
        status=new_status,
        version=claimed[1],
    )
    publish_after_commit(notifier, events)
    return _load_order(db, tenant_id=tenant_id, po_id=po_id)


def _validate_entries(
    entries: list[ReceiptEntryInput],
    lines_by_id: dict[str, PurchaseOrderLine],
    *,
    po_id: str,
) -> list[tuple[PurchaseOrderLine, int, Decimal]]:
    if not entries:
        raise ValidationError("A receipt needs at least one entry", field="entries")

    validated: list[tuple[PurchaseOrderLine, int, Decimal]] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        line = lines_by_id.get(entry.line_id)
        if line is None:
            raise ValidationError(
                "Receipt entry references a line outside this purchase order",
                field=f"entries[{index}].line_id",
                line_id=entry.line_id,
                purchase_order_id=po_id,
            )
        if entry.line_id in seen:
            raise ValidationError(
                "A line may appear only once per receipt",
                field=f"entries[{index}].line_id",
                line_id=entry.line_id,
            )
        seen.add(entry.line_id)
        if entry.quantity_received <= 0:
            raise ValidationError(
                "quantity_received must be greater than zero",
                field=f"entries[{index}].quantity_received",
                value=entry.quantity_received,
            )
        price = to_money(entry.actual_price)
        if price < 0:
            raise ValidationError(
                "actual_price cannot be negative",
                field=f"entries[{index}].actual_price",
                value=str(price),
            )
        if line.quantity_received + entry.quantity_received > line.quantity_ordered:
            raise OverReceiptError(
                f"Cannot receive {entry.quantity_received} of {line.variant_sku}: "
                f"{line.quantity_received} of {line.quantity_ordered} already received",
                line_id=line.id,
                sku=line.variant_sku,
                quantity_ordered=line.quantity_ordered,
                quantity_already_received=line.quantity_received,
                quantity_attempted=entry.quantity_received,
            )
        validated.append((line, entry.quantity_received, price))
    return validated


def record_receipt(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str,
    po_id: str,
    entries: list[ReceiptEntryInput],
    notifier: EventNotifier,
    receipt_date: datetime | None = None,
    notes: str | None = None,
    receipt_number: str | None = None,
) -> PurchaseOrderReceipt:
    events: list[DomainEvent] = []
    with atomic(db):
        ensure_active_tenant(db, tenant_id)
        order = _load_order(db, tenant_id=tenant_id, po_id=po_id)

        claimed = _bump_version(db, tenant_id=tenant_id, po_id=po_id, statuses=RECEIVABLE_STATUSES)
        if claimed is None:
            order = _load_order(db, tenant_id=tenant_id, po_id=po_id)
            if order.status == "draft":
                raise ReceiptBeforeSendNotAllowedError(
                    "Goods cannot be received against a draft purchase order",
                    purchase_order_id=po_id,
                    status=order.status,
                )
            if order.status == "received":
                raise PurchaseOrderLockedError(
                    "Purchase order is already fully received",
                    purchase_order_id=po_id,
                    status=order.status,
                )
            raise ConcurrentModificationError("Purchase order changed during receipt", purchase_order_id=po_id)
        previous_status = claimed[0]

        lines = _load_lines(db, tenant_id=tenant_id, po_id=po_id)
        validated = _validate_entries(entries, {line.id: line for line in lines}, po_id=po_id)

        number = optional_code(receipt_number) or generate_receipt_number(db, tenant_id=tenant_id)

        receipt = PurchaseOrderReceipt(
            id=generate_shortuuid(),
            tenant_id=tenant_id,
            purchase_order_id=po_id,
            receipt_number=number,
            receipt_date=receipt_date or _utcnow(),
            notes=notes,
            created_by=actor_id,
        )
        db.add(receipt)
        db.flush()

        total_quantity = 0
        for line, quantity, price in validated:
            _, stock_event = apply_movement(
                db,
                tenant_id=tenant_id,
                actor_id=actor_id,
                variant_id=line.variant_id,
                quantity=quantity,
                movement_type="purchase",
                reference_id=po_id,
                reference_type="purchase_order",
                notes=f"Receipt {number}",
            )
            events.append(stock_event)

            incremented = db.execute(
                update(PurchaseOrderLine)
                .where(
                    PurchaseOrderLine.tenant_id == tenant_id,
                    PurchaseOrderLine.id == line.id,
                    PurchaseOrderLine.quantity_received + quantity <= PurchaseOrderLine.quantity_ordered,
                )
                .values(quantity_received=PurchaseOrderLine.quantity_received + quantity)
                .returning(PurchaseOrderLine.quantity_received)
                .execution_options(synchronize_session=False)
            ).first()
            if incremented is None:
                raise OverReceiptError(
                    f"Cannot receive {quantity} of {line.variant_sku}: line changed concurrently",
                    line_id=line.id,
                    sku=line.variant_sku,
                    quantity_ordered=line.quantity_ordered,
                    quantity_attempted=quantity,
                )

            db.add(
                PurchaseOrderReceiptLine(
                    id=generate_shortuuid(),
                    tenant_id=tenant_id,
                    receipt_id=receipt.id,
                    line_id=line.id,
                    quantity_received=quantity,
                    actual_price=price,
                )
            )
            total_quantity += quantity
        db.flush()

        outstanding = int(
            db.execute(
                select(func.count(PurchaseOrderLine.id)).where(
                    PurchaseOrderLine.tenant_id == tenant_id,
                    PurchaseOrderLine.purchase_order_id == po_id,
                    PurchaseOrderLine.quantity_received < PurchaseOrderLine.quantity_ordered,
                )
            ).scalar_one()
        )
        closed = outstanding == 0
        if closed:
            db.execute(
                update(PurchaseOrder)
                .where(PurchaseOrder.tenant_id == tenant_id, PurchaseOrder.id == po_id)
                .values(status="received", updated_at=_utcnow())
                .execution_options(synchronize_session=False)
            )

        order = _load_order(db, tenant_id=tenant_id, po_id=po_id)
        log_audit_event(
            db,
            tenant_id=tenant_id,
            actor_id=actor_id,
            action="purchase_order.receipt",
            target_type="purchase_order",
            target_id=po_id,
            metadata_json={
                "receipt_id": receipt.id,
                "receipt_number": number,
                "line_count": len(validated),
                "total_quantity": total_quantity,
                "closed": closed,
            },
        )
        events.append(
            purchase_order_event(
                RECEIPT_RECORDED,
                tenant_id=tenant_id,
                receipt_id=receipt.id,
                receipt_number=number,
                line_count=len(validated),
                total_quantity=total_quantity,
                **_order_payload(order),
            )
        )
        if closed:
            events.append(
                purchase_order_event(
                    PURCHASE_ORDER_STATUS_CHANGED,
                    tenant_id=tenant_id,
                    previous_status=previous_status,
                    **_order_payload(order),
                )
            )
        receipt_id = receipt.id

    _log(
        "receipt_recorded",
        tenant_id=tenant_id,
        actor_id=actor_id,
        purchase_order_id=po_id,
        receipt_id=receipt_id,
        total_quantity=total_quantity,
        closed=closed,
    )
    publish_after_commit(notifier, events)
    return db.execute(
        select(PurchaseOrderReceipt).where(
            PurchaseOrderReceipt.tenant_id == tenant_id,
            PurchaseOrderReceipt.id == receipt_id,
        )
    ).scalar_one()


def _receipt_details(db: Session, *, tenant_id: str, po_id: str) -> list[ReceiptDetail]:
    receipts = db.execute(
        select(PurchaseOrderReceipt)
        .where(PurchaseOrderReceipt.tenant_id == tenant_id, PurchaseOrderReceipt.purchase_order_id == po_id)
        .order_by(PurchaseOrderReceipt.receipt_date.asc(), PurchaseOrderReceipt.receipt_number.asc())
    ).scalars().all()
    if not receipts:
        return []

    entries_by_receipt: dict[str, list[PurchaseOrderReceiptLine]] = {receipt.id: [] for receipt in receipts}
    entry_rows = db.execute(
        select(PurchaseOrderReceiptLine).where(
            PurchaseOrderReceiptLine.tenant_id == tenant_id,
            PurchaseOrderReceiptLine.receipt_id.in_(list(entries_by_receipt)),
        )
    ).scalars().all()
    for entry in entry_rows:
        entries_by_receipt[entry.receipt_id].append(entry)

    details = []
    for receipt in receipts:
        entries = entries_by_receipt[receipt.id]
        details.append(
            ReceiptDetail(
                receipt=receipt,
                entries=entries,
                total_quantity=sum(entry.quantity_received for entry in entries),
                total_amount=to_money(sum((to_money(e.actual_price) * e.quantity_received for e in entries), ZERO_MONEY)),
            )
        )
    return details


def get_purchase_order(db: Session, *, tenant_id: str, po_id: str) -> PurchaseOrderDetail:
    """Order with lines, receipts and the variance figures derived from receipt entries."""
    order = _load_order(db, tenant_id=tenant_id, po_id=po_id)
    lines = _load_lines(db, tenant_id=tenant_id, po_id=po_id)
    receipts = _receipt_details(db, tenant_id=tenant_id, po_id=po_id)

    entries_by_line: dict[str, list[PurchaseOrderReceiptLine]] = {}
    for receipt in receipts:
        for entry in receipt.entries:
            entries_by_line.setdefault(entry.line_id, []).append(entry)

    detail = PurchaseOrderDetail(order=order, receipts=receipts)
    expected_total = ZERO_MONEY
    actual_total = ZERO_MONEY
    variance_total = ZERO_MONEY
    for line in lines:
        expected_price = to_money(line.expected_price)
        line_actual = ZERO_MONEY
        line_variance = ZERO_MONEY
        for entry in entries_by_line.get(line.id, []):
            actual_price = to_money(entry.actual_price)
            line_actual += actual_price * entry.quantity_received
            line_variance += (actual_price - expected_price) * entry.quantity_received
        detail.lines.append(
            LineDetail(
                line=line,
                quantity_pending=line.quantity_ordered - line.quantity_received,
                actual_total=to_money(line_actual),
                price_variance=to_money(line_variance),
            )
        )
        expected_total += expected_price * line.quantity_ordered
        actual_total += line_actual
        variance_total += line_variance

    detail.expected_total = to_money(expected_total)
    detail.actual_total = to_money(actual_total)
    detail.price_variance = to_money(variance_total)
    return detail


def list_purchase_orders(
    db: Session,
    *,
    tenant_id: str,
    status: str | None = None,
    supplier_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[PurchaseOrder], int]:
    if status is not None and status not in PURCHASE_ORDER_STATUSES:
        raise ValidationError(f"Unknown purchase order status: {status}", field="status")

    stmt = select(PurchaseOrder).where(PurchaseOrder.tenant_id == tenant_id)
    if status:
        stmt = stmt.where(PurchaseOrder.status == status)
    if supplier_id:
        stmt = stmt.where(PurchaseOrder.supplier_id == supplier_id)
    if start is not None:
        stmt = stmt.where(PurchaseOrder.order_date >= start)
    if end is not None:
        stmt = stmt.where(PurchaseOrder.order_date <= end)

    total = int(db.execute(select(func.count()).select_from(stmt.subquery())).scalar_one())
    rows = db.execute(
        stmt.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.po_number.desc())
        .offset(offset)
        .limit(limit)
        .execution_options(populate_existing=True)
    ).scalars().all()
    return list(rows), total


def list_receipts(db: Session, *, tenant_id: str, po_id: str) -> list[ReceiptDetail]:
    _load_order(db, tenant_id=tenant_id, po_id=po_id)
    return _receipt_details(db, tenant_id=tenant_id, po_id=po_id)
