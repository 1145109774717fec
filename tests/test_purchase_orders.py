import re
from datetime import date

import pytest
from sqlalchemy import func, select

from conftest import make_purchase_order, make_supplier, make_tenant, make_variant
from stockflow.core.errors import (
    ConcurrentModificationError,
    DuplicateKeyError,
    InvalidTransitionError,
    ManualReceivedNotAllowedError,
    NotFoundError,
    OverReceiptError,
    PurchaseOrderLockedError,
    ReceiptBeforeSendNotAllowedError,
    ValidationError,
)
from stockflow.models.inventory import StockMovement
from stockflow.models.purchase_order import PurchaseOrder, PurchaseOrderReceipt
from stockflow.services import audit_service, purchase_order_service as po_service
from stockflow.services.variant_store import get_variant


def _receive(db, tenant_id, po_id, entries, notifier, **kwargs):
    return po_service.record_receipt(
        db,
        tenant_id=tenant_id,
        actor_id="receiver-1",
        po_id=po_id,
        entries=[
            po_service.ReceiptEntryInput(line_id=line_id, quantity_received=qty, actual_price=price)
            for line_id, qty, price in entries
        ],
        notifier=notifier,
        **kwargs,
    )


def _count(db, model, *criteria) -> int:
    return int(db.execute(select(func.count()).select_from(model).where(*criteria)).scalar_one())


def test_create_purchase_order_generates_number_and_total(db, notifier):
    tenant = make_tenant(db)
    supplier = make_supplier(db, tenant.id)
    _, variant = make_variant(db, tenant.id)

    order = make_purchase_order(
        db, tenant.id, supplier.id, [(variant.id, 10, "12.50")], notifier=notifier
    )

    assert order.status == "draft"
    assert order.version == 1
    assert re.fullmatch(r"PO-\d{8}-0001", order.po_number)
    assert str(order.total_amount) == "125.00"
    assert notifier.names() == ["purchase_order_created"]

    second = make_purchase_order(db, tenant.id, supplier.id, [(variant.id, 1, "1.00")])
    assert second.po_number.endswith("-0002")


def test_generate_po_number_is_per_tenant_and_per_day(db):
    tenant_a = make_tenant(db, "Tenant A")
    tenant_b = make_tenant(db, "Tenant B")
    supplier = make_supplier(db, tenant_a.id)
    _, variant = make_variant(db, tenant_a.id)
    make_purchase_order(db, tenant_a.id, supplier.id, [(variant.id, 1, "1.00")], po_number="PO-20261019-0007")

    assert po_service.generate_po_number(db, tenant_id=tenant_a.id, today=date(2026, 10, 19)) == "PO-20261019-0008"
    assert po_service.generate_po_number(db, tenant_id=tenant_a.id, today=date(2026, 10, 20)) == "PO-20261020-0001"
    assert po_service.generate_po_number(db, tenant_id=tenant_b.id, today=date(2026, 10, 19)) == "PO-20261019-0001"


def test_duplicate_po_number_is_rejected(db):
    tenant = make_tenant(db)
    supplier = make_supplier(db, tenant.id)
    _, variant = make_variant(db, tenant.id)
    make_purchase_order(db, tenant.id, supplier.id, [(variant.id, 1, "1.00")], po_number="PO-CUSTOM-1")

    with pytest.raises(DuplicateKeyError):
        make_purchase_order(db, tenant.id, supplier.id, [(variant.id, 1, "1.00")], po_number="po-custom-1")
    assert _count(db, PurchaseOrder, PurchaseOrder.tenant_id == tenant.id) == 1


def test_create_rejects_inactive_supplier_and_foreign_variant(db):
    tenant = make_tenant(db)
    other = make_tenant(db, "Other Tenant")
    inactive = make_supplier(db, tenant.id, code="OLD", status="inactive")
    supplier = make_supplier(db, tenant.id)
    _, foreign_variant = make_variant(db, other.id, sku="FOREIGN-1")

    with pytest.raises(ValidationError):
        make_purchase_order(db, tenant.id, inactive.id, [(foreign_variant.id, 1, "1.00")])
    with pytest.raises(NotFoundError):
        make_purchase_order(db, tenant.id, supplier.id, [(foreign_variant.id, 1, "1.00")])
    assert _count(db, PurchaseOrder, PurchaseOrder.tenant_id == tenant.id) == 0


def test_scenario_c_partial_then_full_receipt_closes_order(db, notifier):
    tenant = make_tenant(db)
    supplier = make_supplier(db, tenant.id)
    _, variant = make_variant(db, tenant.id)
    order = make_purchase_order(db, tenant.id, supplier.id, [(variant.id, 20, "5.00")], status="sent")
    line = po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id).lines[0].line

    first = _receive(db, tenant.id, order.id, [(line.id, 12, "5.00")], notifier)
    detail = po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id)
    assert re.fullmatch(r"REC-\d{8}-0001", first.receipt_number)
    assert detail.order.status == "sent"
    assert detail.lines[0].line.quantity_received == 12
    assert detail.lines[0].quantity_pending == 8
    assert get_variant(db, tenant.id, variant.id, refresh=True).stock == 12
    assert notifier.names() == ["stock_changed", "receipt_recorded"]

    notifier.events.clear()
    _receive(db, tenant.id, order.id, [(line.id, 8, "5.00")], notifier)
    detail = po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id)
    assert detail.order.status == "received"
    assert detail.lines[0].line.quantity_received == 20
    assert len(detail.receipts) == 2
    assert get_variant(db, tenant.id, variant.id, refresh=True).stock == 20
    assert notifier.names() == ["stock_changed", "receipt_recorded", "purchase_order_status_changed"]

    movements = db.execute(
        select(StockMovement).where(
            StockMovement.variant_id == variant.id,
            StockMovement.movement_type == "purchase",
        )
    ).scalars().all()
    assert sorted(movement.quantity for movement in movements) == [8, 12]
    assert {movement.reference_id for movement in movements} == {order.id}
    assert {movement.reference_type for movement in movements} == {"purchase_order"}

    with pytest.raises(PurchaseOrderLockedError):
        _receive(db, tenant.id, order.id, [(line.id, 1, "5.00")], notifier)


def test_over_receipt_is_all_or_nothing(db, notifier):
    tenant = make_tenant(db)
    supplier = make_supplier(db, tenant.id)
    _, shirt = make_variant(db, tenant.id, sku="SHIRT-1")
    _, cap = make_variant(db, tenant.id, sku="CAP-1")
    order = make_purchase_order(
        db, tenant.id, supplier.id, [(shirt.id, 10, "4.00"), (cap.id, 5, "2.00")], status="confirmed"
    )
    lines = [item.line for item in po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id).lines]
    version_before = order.version

    with pytest.raises(OverReceiptError) as exc_info:
        _receive(db, tenant.id, order.id, [(lines[0].id, 4, "4.00"), (lines[1].id, 6, "2.00")], notifier)

    assert exc_info.value.details["quantity_ordered"] == 5
    assert exc_info.value.details["quantity_already_received"] == 0
    assert exc_info.value.details["quantity_attempted"] == 6

    detail = po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id)
    assert [item.line.quantity_received for item in detail.lines] == [0, 0]
    assert detail.receipts == []
    assert detail.order.version == version_before
    assert get_variant(db, tenant.id, shirt.id, refresh=True).stock == 0
    assert _count(db, StockMovement, StockMovement.reference_id == order.id) == 0
    assert notifier.events == []


def test_receipt_rejects_lines_from_another_order(db, notifier):
    tenant = make_tenant(db)
    supplier = make_supplier(db, tenant.id)
    _, variant = make_variant(db, tenant.id)
    first = make_purchase_order(db, tenant.id, supplier.id, [(variant.id, 3, "1.00")], status="sent")
    second = make_purchase_order(db, tenant.id, supplier.id, [(variant.id, 3, "1.00")], status="sent")
    foreign_line = po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=second.id).lines[0].line

    with pytest.raises(ValidationError):
        _receive(db, tenant.id, first.id, [(foreign_line.id, 1, "1.00")], notifier)
    assert _count(db, PurchaseOrderReceipt, PurchaseOrderReceipt.tenant_id == tenant.id) == 0


def test_receipt_against_draft_is_rejected(db, notifier):
    tenant = make_tenant(db)
    supplier = make_supplier(db, tenant.id)
    _, variant = make_variant(db, tenant.id)
    order = make_purchase_order(db, tenant.id, supplier.id, [(variant.id, 3, "1.00")])
    line = po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id).lines[0].line

    with pytest.raises(ReceiptBeforeSendNotAllowedError):
        _receive(db, tenant.id, order.id, [(line.id, 1, "1.00")], notifier)
    assert get_variant(db, tenant.id, variant.id, refresh=True).stock == 0


def test_received_status_cannot_be_set_manually(db, notifier):
    tenant = make_tenant(db)
    supplier = make_supplier(db, tenant.id)
    _, variant = make_variant(db, tenant.id)
    order = make_purchase_order(db, tenant.id, supplier.id, [(variant.id, 3, "1.00")], status="confirmed")

    with pytest.raises(ManualReceivedNotAllowedError):
        po_service.transition_status(
            db, tenant_id=tenant.id, actor_id="actor-1", po_id=order.id, new_status="received", notifier=notifier
        )
    assert po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id).order.status == "confirmed"


def test_status_transitions_follow_workflow(db, notifier):
    tenant = make_tenant(db)
    supplier = make_supplier(db, tenant.id)
    _, variant = make_variant(db, tenant.id)
    order = make_purchase_order(db, tenant.id, supplier.id, [(variant.id, 3, "1.00")])

    with pytest.raises(InvalidTransitionError):
        po_service.transition_status(
            db, tenant_id=tenant.id, actor_id="actor-1", po_id=order.id, new_status="confirmed", notifier=notifier
        )

    sent = po_service.transition_status(
        db, tenant_id=tenant.id, actor_id="actor-1", po_id=order.id, new_status="sent", notifier=notifier
    )
    assert sent.status == "sent"
    assert sent.version == 2

    back = po_service.transition_status(
        db, tenant_id=tenant.id, actor_id="actor-1", po_id=order.id, new_status="draft", notifier=notifier
    )
    assert back.status == "draft"
    back_version = back.version

    unchanged = po_service.transition_status(
        db, tenant_id=tenant.id, actor_id="actor-1", po_id=order.id, new_status="draft", notifier=notifier
    )
    assert unchanged.status == "draft"
    assert unchanged.version == back_version + 1
    assert notifier.names() == ["purchase_order_status_changed", "purchase_order_status_changed"]
    history = audit_service.list_audit_events(db, tenant_id=tenant.id, target_type="purchase_order", target_id=order.id)
    assert [event.metadata_json for event in history if event.action == "purchase_order.status"][-1] == {
        "from": "draft",
        "to": "draft",
    }

    with pytest.raises(InvalidTransitionError):
        po_service.transition_status(
            db, tenant_id=tenant.id, actor_id="actor-1", po_id=order.id, new_status="cancelled", notifier=notifier
        )


def test_stale_expected_status_is_a_conflict(db, notifier):
    tenant = make_tenant(db)
    supplier = make_supplier(db, tenant.id)
    _, variant = make_variant(db, tenant.id)
    order = make_purchase_order(db, tenant.id, supplier.id, [(variant.id, 3, "1.00")], status="sent")

    with pytest.raises(ConcurrentModificationError):
        po_service.transition_status(
            db,
            tenant_id=tenant.id,
            actor_id="actor-1",
            po_id=order.id,
            new_status="sent",
            expected_status="draft",
            notifier=notifier,
        )
    assert po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id).order.status == "sent"


def test_only_draft_orders_can_be_edited_or_deleted(db, notifier):
    tenant = make_tenant(db)
    supplier = make_supplier(db, tenant.id)
    _, shirt = make_variant(db, tenant.id, sku="SHIRT-1")
    _, cap = make_variant(db, tenant.id, sku="CAP-1")
    order = make_purchase_order(db, tenant.id, supplier.id, [(shirt.id, 3, "2.00")])

    updated = po_service.update_purchase_order(
        db,
        tenant_id=tenant.id,
        actor_id="actor-1",
        po_id=order.id,
        notes="Rush order",
        lines=[po_service.LineInput(variant_id=cap.id, quantity_ordered=4, expected_price="3.00")],
        notifier=notifier,
    )
    assert updated.notes == "Rush order"
    assert str(updated.total_amount) == "12.00"
    assert updated.version == 2
    detail = po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id)
    assert [item.line.variant_sku for item in detail.lines] == ["CAP-1"]

    po_service.transition_status(
        db, tenant_id=tenant.id, actor_id="actor-1", po_id=order.id, new_status="sent", notifier=notifier
    )
    with pytest.raises(PurchaseOrderLockedError):
        po_service.update_purchase_order(
            db, tenant_id=tenant.id, actor_id="actor-1", po_id=order.id, notes="Too late", notifier=notifier
        )
    with pytest.raises(PurchaseOrderLockedError):
        po_service.delete_purchase_order(db, tenant_id=tenant.id, actor_id="actor-1", po_id=order.id)

    draft = make_purchase_order(db, tenant.id, supplier.id, [(shirt.id, 1, "1.00")])
    po_service.delete_purchase_order(db, tenant_id=tenant.id, actor_id="actor-1", po_id=draft.id)
    with pytest.raises(NotFoundError):
        po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=draft.id)

    actions = [event.action for event in audit_service.list_audit_events(db, tenant_id=tenant.id)]
    assert "purchase_order.update" in actions
    assert "purchase_order.delete" in actions


def test_price_variance_and_totals_are_derived_from_receipts(db, notifier):
    tenant = make_tenant(db)
    supplier = make_supplier(db, tenant.id)
    _, shirt = make_variant(db, tenant.id, sku="SHIRT-1")
    _, cap = make_variant(db, tenant.id, sku="CAP-1")
    order = make_purchase_order(
        db, tenant.id, supplier.id, [(shirt.id, 10, "10.00"), (cap.id, 4, "5.00")], status="sent"
    )
    lines = [item.line for item in po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id).lines]

    _receive(db, tenant.id, order.id, [(lines[0].id, 6, "11.00"), (lines[1].id, 4, "4.50")], notifier)
    partial = po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id)
    assert partial.order.status == "sent"
    assert "purchase_order_status_changed" not in notifier.names()

    _receive(db, tenant.id, order.id, [(lines[0].id, 4, "9.00")], notifier)
    assert notifier.names().count("purchase_order_status_changed") == 1

    detail = po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id)
    assert str(detail.expected_total) == "120.00"
    assert str(detail.actual_total) == "120.00"
    assert str(detail.lines[0].price_variance) == "2.00"
    assert str(detail.lines[1].price_variance) == "-2.00"
    assert str(detail.price_variance) == "0.00"
    assert detail.order.status == "received"
    assert [receipt.total_quantity for receipt in detail.receipts] == [10, 4]
    assert {entry.tenant_id for receipt in detail.receipts for entry in receipt.entries} == {tenant.id}

    orders, total = po_service.list_purchase_orders(db, tenant_id=tenant.id, status="received")
    assert total == 1
    assert orders[0].id == order.id


def test_duplicate_receipt_number_rolls_back_everything(db, notifier):
    tenant = make_tenant(db)
    supplier = make_supplier(db, tenant.id)
    _, variant = make_variant(db, tenant.id)
    order = make_purchase_order(db, tenant.id, supplier.id, [(variant.id, 10, "1.00")], status="sent")
    line = po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id).lines[0].line

    _receive(db, tenant.id, order.id, [(line.id, 2, "1.00")], notifier, receipt_number="REC-MANUAL-1")
    with pytest.raises(DuplicateKeyError):
        _receive(db, tenant.id, order.id, [(line.id, 3, "1.00")], notifier, receipt_number="REC-MANUAL-1")

    detail = po_service.get_purchase_order(db, tenant_id=tenant.id, po_id=order.id)
    assert detail.lines[0].line.quantity_received == 2
    assert get_variant(db, tenant.id, variant.id, refresh=True).stock == 2
