from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from stockflow.core.api_docs import error_responses
from stockflow.core.deps import get_db, get_event_notifier
from stockflow.core.permissions import require_permission, require_roles
from stockflow.core.tenancy import RequestContext
from stockflow.models.purchase_order import PurchaseOrder
from stockflow.schemas.common import PaginationMeta
from stockflow.schemas.purchase_order import (
    PurchaseOrderCreate,
    PurchaseOrderLineIn,
    PurchaseOrderLineOut,
    PurchaseOrderListOut,
    PurchaseOrderOut,
    PurchaseOrderStatusIn,
    PurchaseOrderSummaryOut,
    PurchaseOrderUpdate,
    ReceiptCreate,
    ReceiptEntryOut,
    ReceiptListOut,
    ReceiptOut,
)
from stockflow.services import purchase_order_service as po_service
from stockflow.services.event_notifier import EventNotifier

router = APIRouter(prefix="/purchase-orders", tags=["purchase-orders"])


def _line_inputs(lines: list[PurchaseOrderLineIn]) -> list[po_service.LineInput]:
    return [
        po_service.LineInput(
            variant_id=line.variant_id,
            quantity_ordered=line.quantity_ordered,
            expected_price=line.expected_price,
            notes=line.notes,
        )
        for line in lines
    ]


def _summary_fields(order: PurchaseOrder) -> dict:
    return {
        "id": order.id,
        "po_number": order.po_number,
        "supplier_id": order.supplier_id,
        "status": order.status,
        "order_date": order.order_date,
        "expected_delivery_date": order.expected_delivery_date,
        "total_amount": float(order.total_amount or 0),
        "version": order.version,
    }


def _receipt_out(detail: po_service.ReceiptDetail) -> ReceiptOut:
    receipt = detail.receipt
    return ReceiptOut(
        id=receipt.id,
        purchase_order_id=receipt.purchase_order_id,
        receipt_number=receipt.receipt_number,
        receipt_date=receipt.receipt_date,
        notes=receipt.notes,
        created_by=receipt.created_by,
        total_quantity=detail.total_quantity,
        total_amount=float(detail.total_amount),
        entries=[
            ReceiptEntryOut(
                line_id=entry.line_id,
                quantity_received=entry.quantity_received,
                actual_price=float(entry.actual_price),
            )
            for entry in detail.entries
        ],
    )


def _detail_out(detail: po_service.PurchaseOrderDetail) -> PurchaseOrderOut:
    order = detail.order
    return PurchaseOrderOut(
        **_summary_fields(order),
        notes=order.notes,
        created_by=order.created_by,
        lines=[
            PurchaseOrderLineOut(
                id=item.line.id,
                product_id=item.line.product_id,
                variant_id=item.line.variant_id,
                variant_sku=item.line.variant_sku,
                quantity_ordered=item.line.quantity_ordered,
                quantity_received=item.line.quantity_received,
                quantity_pending=item.quantity_pending,
                expected_price=float(item.line.expected_price),
                actual_total=float(item.actual_total),
                price_variance=float(item.price_variance),
                notes=item.line.notes,
            )
            for item in detail.lines
        ],
        receipts=[_receipt_out(receipt) for receipt in detail.receipts],
        expected_total=float(detail.expected_total),
        actual_total=float(detail.actual_total),
        price_variance=float(detail.price_variance),
    )


@router.post(
    "",
    response_model=PurchaseOrderOut,
    status_code=201,
    summary="Create purchase order",
    responses=error_responses(400, 401, 403, 404, 409, 422, 500),
)
def create_purchase_order(
    payload: PurchaseOrderCreate,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("purchase_orders.create")),
    notifier: EventNotifier = Depends(get_event_notifier),
):
    order = po_service.create_purchase_order(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        supplier_id=payload.supplier_id,
        lines=_line_inputs(payload.lines),
        expected_delivery_date=payload.expected_delivery_date,
        notes=payload.notes,
        po_number=payload.po_number,
        notifier=notifier,
    )
    return _detail_out(po_service.get_purchase_order(db, tenant_id=context.tenant_id, po_id=order.id))


@router.get(
    "",
    response_model=PurchaseOrderListOut,
    summary="List purchase orders",
    responses=error_responses(400, 401, 403, 404, 422, 500),
)
def list_purchase_orders(
    status: Literal["draft", "sent", "confirmed", "received"] | None = Query(default=None),
    supplier_id: str | None = Query(default=None),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("purchase_orders.view")),
):
    orders, total = po_service.list_purchase_orders(
        db,
        tenant_id=context.tenant_id,
        status=status,
        supplier_id=supplier_id,
        start=start_date,
        end=end_date,
        limit=limit,
        offset=offset,
    )
    return PurchaseOrderListOut(
        items=[PurchaseOrderSummaryOut(**_summary_fields(order)) for order in orders],
        pagination=PaginationMeta.build(total=total, limit=limit, offset=offset, count=len(orders)),
    )


@router.get(
    "/{po_id}",
    response_model=PurchaseOrderOut,
    summary="Get purchase order with receipts and price variance",
    responses=error_responses(401, 403, 404, 500),
)
def get_purchase_order(
    po_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("purchase_orders.view")),
):
    return _detail_out(po_service.get_purchase_order(db, tenant_id=context.tenant_id, po_id=po_id))


@router.put(
    "/{po_id}",
    response_model=PurchaseOrderOut,
    summary="Edit a draft purchase order",
    responses=error_responses(400, 401, 403, 404, 409, 422, 500),
)
def update_purchase_order(
    po_id: str,
    payload: PurchaseOrderUpdate,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("purchase_orders.edit")),
    notifier: EventNotifier = Depends(get_event_notifier),
):
    changes = payload.model_dump(exclude_unset=True, exclude={"lines"})
    po_service.update_purchase_order(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        po_id=po_id,
        lines=_line_inputs(payload.lines) if payload.lines is not None else None,
        notifier=notifier,
        **changes,
    )
    return _detail_out(po_service.get_purchase_order(db, tenant_id=context.tenant_id, po_id=po_id))


@router.delete(
    "/{po_id}",
    status_code=204,
    summary="Delete a draft purchase order",
    dependencies=[Depends(require_roles("owner", "manager"))],
    responses=error_responses(400, 401, 403, 404, 409, 500),
)
def delete_purchase_order(
    po_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("purchase_orders.delete")),
):
    po_service.delete_purchase_order(db, tenant_id=context.tenant_id, actor_id=context.actor_id, po_id=po_id)
    return Response(status_code=204)


@router.patch(
    "/{po_id}/status",
    response_model=PurchaseOrderOut,
    summary="Move a purchase order along its workflow",
    responses=error_responses(400, 401, 403, 404, 409, 422, 500),
)
def update_status(
    po_id: str,
    payload: PurchaseOrderStatusIn,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("purchase_orders.edit")),
    notifier: EventNotifier = Depends(get_event_notifier),
):
    po_service.transition_status(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        po_id=po_id,
        new_status=payload.status.strip().lower(),
        expected_status=payload.expected_status,
        notifier=notifier,
    )
    return _detail_out(po_service.get_purchase_order(db, tenant_id=context.tenant_id, po_id=po_id))


@router.post(
    "/{po_id}/receipts",
    response_model=ReceiptOut,
    status_code=201,
    summary="Record goods received against a purchase order",
    responses=error_responses(400, 401, 403, 404, 409, 422, 500),
)
def create_receipt(
    po_id: str,
    payload: ReceiptCreate,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("purchase_orders.receive")),
    notifier: EventNotifier = Depends(get_event_notifier),
):
    receipt = po_service.record_receipt(
        db,
        tenant_id=context.tenant_id,
        actor_id=context.actor_id,
        po_id=po_id,
        entries=[
            po_service.ReceiptEntryInput(
                line_id=entry.line_id,
                quantity_received=entry.quantity_received,
                actual_price=entry.actual_price,
            )
            for entry in payload.entries
        ],
        receipt_date=payload.receipt_date,
        notes=payload.notes,
        receipt_number=payload.receipt_number,
        notifier=notifier,
    )
    details = po_service.list_receipts(db, tenant_id=context.tenant_id, po_id=po_id)
    return next(_receipt_out(detail) for detail in details if detail.receipt.id == receipt.id)


@router.get(
    "/{po_id}/receipts",
    response_model=ReceiptListOut,
    summary="List receipts for a purchase order",
    responses=error_responses(401, 403, 404, 500),
)
def list_receipts(
    po_id: str,
    db: Session = Depends(get_db),
    context: RequestContext = Depends(require_permission("purchase_orders.view")),
):
    details = po_service.list_receipts(db, tenant_id=context.tenant_id, po_id=po_id)
    return ReceiptListOut(items=[_receipt_out(detail) for detail in details])
