from conftest import _headers
from stockflow.main import app
from stockflow.services import audit_service, tenant_service


def _tenant(session_local, name: str = "Acme Apparel") -> str:
    db = session_local()
    try:
        return tenant_service.create_tenant(db, name=name).id
    finally:
        db.close()


def _create_variant(client, tenant_id: str, *, sku: str = "TEE-M-RED", opening_stock: int = 10, price: float = 25.0):
    product_res = client.post(
        "/products",
        json={"name": f"Tee {sku}", "product_code": f"P-{sku}", "base_price": price},
        headers=_headers(tenant_id),
    )
    assert product_res.status_code == 201, product_res.text
    product_id = product_res.json()["id"]

    variant_res = client.post(
        f"/products/{product_id}/variants",
        json={"sku": sku, "size": "M", "color": "Red", "opening_stock": opening_stock},
        headers=_headers(tenant_id),
    )
    assert variant_res.status_code == 201, variant_res.text
    return product_id, variant_res.json()["id"]


def _create_supplier(client, tenant_id: str, code: str = "ACME") -> str:
    res = client.post(
        "/suppliers",
        json={"supplier_code": code, "name": "Acme Textiles", "contact_email": "orders@acme.example"},
        headers=_headers(tenant_id),
    )
    assert res.status_code == 201, res.text
    return res.json()["id"]


def test_health_and_ready(test_context):
    client, _ = test_context

    assert client.get("/health").json() == {"ok": True}
    ready_res = client.get("/ready")
    assert ready_res.status_code in {200, 503}
    assert client.get("/").json()["links"]["docs"] == "/docs"


def test_missing_tenant_headers_are_unauthorized(test_context):
    client, _ = test_context

    res = client.get("/products")
    assert res.status_code == 401
    body = res.json()["error"]
    assert body["code"] == "unauthorized"
    assert body["path"] == "/products"
    assert body["request_id"]
    assert res.headers["X-Request-ID"] == body["request_id"]


def test_unknown_role_and_unknown_tenant_are_rejected(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)

    bad_role = client.get("/products", headers=_headers(tenant_id, role="intern"))
    assert bad_role.status_code == 403

    missing = client.get("/products", headers=_headers("no-such-tenant"))
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"


def test_suspended_tenant_is_not_found(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)
    db = session_local()
    try:
        tenant_service.set_tenant_status(db, tenant_id=tenant_id, status="suspended")
    finally:
        db.close()

    res = client.get("/inventory/movements", headers=_headers(tenant_id))
    assert res.status_code == 404


def test_staff_cannot_adjust_stock_but_can_reserve(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)
    _, variant_id = _create_variant(client, tenant_id)

    adjust = client.post(
        "/inventory/movements",
        json={"variant_id": variant_id, "movement_type": "adjustment", "quantity": -1},
        headers=_headers(tenant_id, role="staff"),
    )
    assert adjust.status_code == 403
    assert adjust.json()["error"]["code"] == "forbidden"

    reserve = client.post(
        f"/inventory/variants/{variant_id}/reserve",
        json={"quantity": 2},
        headers=_headers(tenant_id, role="staff"),
    )
    assert reserve.status_code == 200, reserve.text
    assert reserve.json()["available_stock"] == 8


def test_movement_flow_and_history(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)
    product_id, variant_id = _create_variant(client, tenant_id, opening_stock=10)

    sale = client.post(
        "/inventory/movements",
        json={"variant_id": variant_id, "movement_type": "sale", "quantity": 4, "notes": "Walk-in"},
        headers=_headers(tenant_id, role="manager"),
    )
    assert sale.status_code == 201, sale.text
    assert sale.json()["quantity"] == -4
    assert sale.json()["new_stock"] == 6

    level = client.get(f"/inventory/variants/{variant_id}", headers=_headers(tenant_id, role="staff"))
    assert level.status_code == 200
    assert level.json() == {
        "variant_id": variant_id,
        "sku": "TEE-M-RED",
        "stock": 6,
        "reserved_stock": 0,
        "available_stock": 6,
    }

    history = client.get(
        f"/inventory/variants/{variant_id}/history",
        params={"limit": 1},
        headers=_headers(tenant_id),
    )
    assert history.status_code == 200
    body = history.json()
    assert body["product_id"] == product_id
    assert body["pagination"] == {"total": 2, "limit": 1, "offset": 0, "count": 1, "has_next": True}
    assert body["movements"][0]["movement_type"] == "sale"

    filtered = client.get(
        "/inventory/movements",
        params={"movement_type": "adjustment", "sku": "tee-m-red"},
        headers=_headers(tenant_id),
    )
    assert filtered.status_code == 200
    assert [item["notes"] for item in filtered.json()["items"]] == ["Opening stock"]


def test_insufficient_stock_envelope(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)
    _, variant_id = _create_variant(client, tenant_id, opening_stock=3)

    res = client.post(
        "/inventory/movements",
        json={"variant_id": variant_id, "movement_type": "sale", "quantity": 5},
        headers=_headers(tenant_id),
    )
    assert res.status_code == 400
    error = res.json()["error"]
    assert error["code"] == "insufficient_stock"
    assert error["details"]["requested"] == 5
    assert error["details"]["current_stock"] == 3

    reserve = client.post(
        f"/inventory/variants/{variant_id}/reserve",
        json={"quantity": 4},
        headers=_headers(tenant_id),
    )
    assert reserve.status_code == 400
    assert reserve.json()["error"]["code"] == "insufficient_available_stock"


def test_request_validation_envelope(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)
    _, variant_id = _create_variant(client, tenant_id)

    res = client.post(
        "/inventory/movements",
        json={"variant_id": variant_id, "movement_type": "sale", "quantity": 0},
        headers=_headers(tenant_id),
    )
    assert res.status_code == 422
    error = res.json()["error"]
    assert error["code"] == "validation_error"
    assert error["details"][0]["field"] == "quantity"


def test_duplicate_sku_and_cross_tenant_lookup(test_context):
    client, session_local = test_context
    tenant_a = _tenant(session_local, "Tenant A")
    tenant_b = _tenant(session_local, "Tenant B")
    product_id, variant_id = _create_variant(client, tenant_a)

    duplicate = client.post(
        f"/products/{product_id}/variants",
        json={"sku": "tee-m-red", "size": "L", "color": "Blue"},
        headers=_headers(tenant_a),
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "duplicate_key"

    foreign = client.get(f"/inventory/variants/{variant_id}", headers=_headers(tenant_b))
    assert foreign.status_code == 404
    assert foreign.json()["error"]["details"]["entity"] == "variant"

    listing = client.get("/products", headers=_headers(tenant_b))
    assert listing.json()["items"] == []


def test_audit_rows_carry_the_request_id(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)

    res = client.post(
        "/suppliers",
        json={"supplier_code": "LOOM", "name": "Loom Works"},
        headers={**_headers(tenant_id), "X-Request-ID": "req-audit-1"},
    )
    assert res.status_code == 201, res.text
    assert res.headers["X-Request-ID"] == "req-audit-1"

    db = session_local()
    try:
        events = audit_service.list_audit_events(db, tenant_id=tenant_id, target_type="supplier")
    finally:
        db.close()
    assert [(event.action, event.request_id) for event in events] == [("supplier.create", "req-audit-1")]


def test_subscribers_receive_http_mutations(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)
    _, variant_id = _create_variant(client, tenant_id, opening_stock=5)
    seen = []
    app.state.event_notifier.subscribe(tenant_id, seen.append)

    client.post(f"/inventory/variants/{variant_id}/reserve", json={"quantity": 2}, headers=_headers(tenant_id))
    client.post(
        f"/inventory/variants/{variant_id}/fulfill",
        json={"quantity": 2, "reference_id": "order-1"},
        headers=_headers(tenant_id),
    )

    assert [event.payload["change"] for event in seen] == ["reserve", "fulfill"]
    assert seen[-1].payload["new_stock"] == 3


def test_purchase_order_http_flow(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)
    _, variant_id = _create_variant(client, tenant_id, opening_stock=0)
    supplier_id = _create_supplier(client, tenant_id)

    create = client.post(
        "/purchase-orders",
        json={
            "supplier_id": supplier_id,
            "expected_delivery_date": "2026-11-01",
            "lines": [{"variant_id": variant_id, "quantity_ordered": 20, "expected_price": 5}],
        },
        headers=_headers(tenant_id, role="manager"),
    )
    assert create.status_code == 201, create.text
    order = create.json()
    assert order["status"] == "draft"
    assert order["expected_total"] == 100.0
    line_id = order["lines"][0]["id"]

    early = client.post(
        f"/purchase-orders/{order['id']}/receipts",
        json={"entries": [{"line_id": line_id, "quantity_received": 1, "actual_price": 5}]},
        headers=_headers(tenant_id),
    )
    assert early.status_code == 400
    assert early.json()["error"]["code"] == "receipt_before_send_not_allowed"

    sent = client.patch(
        f"/purchase-orders/{order['id']}/status",
        json={"status": "sent", "expected_status": "draft"},
        headers=_headers(tenant_id),
    )
    assert sent.status_code == 200, sent.text
    assert sent.json()["status"] == "sent"

    stale = client.patch(
        f"/purchase-orders/{order['id']}/status",
        json={"status": "confirmed", "expected_status": "draft"},
        headers=_headers(tenant_id),
    )
    assert stale.status_code == 409
    assert stale.json()["error"]["code"] == "concurrent_modification"

    manual = client.patch(
        f"/purchase-orders/{order['id']}/status",
        json={"status": "received"},
        headers=_headers(tenant_id),
    )
    assert manual.status_code == 400
    assert manual.json()["error"]["code"] == "manual_received_not_allowed"

    over = client.post(
        f"/purchase-orders/{order['id']}/receipts",
        json={"entries": [{"line_id": line_id, "quantity_received": 21, "actual_price": 5}]},
        headers=_headers(tenant_id, role="staff"),
    )
    assert over.status_code == 400
    assert over.json()["error"]["code"] == "over_receipt"

    first = client.post(
        f"/purchase-orders/{order['id']}/receipts",
        json={"entries": [{"line_id": line_id, "quantity_received": 12, "actual_price": 5.5}]},
        headers=_headers(tenant_id, role="staff"),
    )
    assert first.status_code == 201, first.text
    assert first.json()["total_quantity"] == 12

    second = client.post(
        f"/purchase-orders/{order['id']}/receipts",
        json={"entries": [{"line_id": line_id, "quantity_received": 8, "actual_price": 5}]},
        headers=_headers(tenant_id, role="staff"),
    )
    assert second.status_code == 201, second.text

    detail = client.get(f"/purchase-orders/{order['id']}", headers=_headers(tenant_id, role="staff"))
    body = detail.json()
    assert body["status"] == "received"
    assert body["lines"][0]["quantity_pending"] == 0
    assert body["price_variance"] == 6.0
    assert len(body["receipts"]) == 2

    receipts = client.get(f"/purchase-orders/{order['id']}/receipts", headers=_headers(tenant_id))
    assert [item["total_quantity"] for item in receipts.json()["items"]] == [12, 8]

    level = client.get(f"/inventory/variants/{variant_id}", headers=_headers(tenant_id))
    assert level.json()["stock"] == 20

    listing = client.get("/purchase-orders", params={"status": "received"}, headers=_headers(tenant_id))
    assert listing.json()["pagination"]["total"] == 1


def test_draft_purchase_order_edit_and_delete(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)
    _, variant_id = _create_variant(client, tenant_id)
    supplier_id = _create_supplier(client, tenant_id)

    create = client.post(
        "/purchase-orders",
        json={"supplier_id": supplier_id, "lines": [{"variant_id": variant_id, "quantity_ordered": 2, "expected_price": 3}]},
        headers=_headers(tenant_id),
    )
    po_id = create.json()["id"]

    edit = client.put(
        f"/purchase-orders/{po_id}",
        json={"notes": "Call before delivery"},
        headers=_headers(tenant_id, role="manager"),
    )
    assert edit.status_code == 200, edit.text
    assert edit.json()["notes"] == "Call before delivery"
    assert edit.json()["version"] == 2

    staff_delete = client.delete(f"/purchase-orders/{po_id}", headers=_headers(tenant_id, role="staff"))
    assert staff_delete.status_code == 403

    deleted = client.delete(f"/purchase-orders/{po_id}", headers=_headers(tenant_id, role="manager"))
    assert deleted.status_code == 204
    assert client.get(f"/purchase-orders/{po_id}", headers=_headers(tenant_id)).status_code == 404


def test_product_detail_edit_and_delete(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)
    product_id, variant_id = _create_variant(client, tenant_id, sku="TEE-S", opening_stock=2)

    detail = client.get(f"/products/{product_id}", headers=_headers(tenant_id, role="staff"))
    assert detail.status_code == 200, detail.text
    assert [variant["id"] for variant in detail.json()["variants"]] == [variant_id]

    staff_edit = client.put(f"/products/{product_id}", json={"name": "Nope"}, headers=_headers(tenant_id, role="staff"))
    assert staff_edit.status_code == 403

    edit = client.put(
        f"/products/{product_id}",
        json={"name": "Crew Tee", "base_price": 30},
        headers=_headers(tenant_id, role="manager", actor_id="manager-1"),
    )
    assert edit.status_code == 200, edit.text
    body = edit.json()
    assert body["name"] == "Crew Tee"
    assert body["base_price"] == 30.0
    assert body["description"] is None
    assert body["variants"][0]["stock"] == 2

    value = client.get("/analytics/inventory-value", headers=_headers(tenant_id))
    assert value.json()["total_value"] == 60.0

    manager_delete = client.delete(f"/products/{product_id}", headers=_headers(tenant_id, role="manager"))
    assert manager_delete.status_code == 403

    in_use = client.delete(f"/products/{product_id}", headers=_headers(tenant_id))
    assert in_use.status_code == 409
    assert in_use.json()["error"]["code"] == "record_in_use"

    spare_id, _ = _create_variant(client, tenant_id, sku="TEE-XL", opening_stock=0)
    assert client.delete(f"/products/{spare_id}", headers=_headers(tenant_id)).status_code == 204
    assert client.get(f"/products/{spare_id}", headers=_headers(tenant_id)).status_code == 404

    db = session_local()
    try:
        events = audit_service.list_audit_events(db, tenant_id=tenant_id, target_type="product", target_id=product_id)
        update_event = next(event for event in events if event.action == "product.update")
        assert update_event.actor_id == "manager-1"
    finally:
        db.close()


def test_supplier_edit_pricing_and_delete(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)
    product_id, variant_id = _create_variant(client, tenant_id)
    supplier_id = _create_supplier(client, tenant_id)

    fetched = client.get(f"/suppliers/{supplier_id}", headers=_headers(tenant_id, role="staff"))
    assert fetched.status_code == 200
    assert fetched.json()["contact_email"] == "orders@acme.example"

    priced = client.post(
        f"/suppliers/{supplier_id}/pricing",
        json={"product_id": product_id, "price": 11.5},
        headers=_headers(tenant_id, role="manager"),
    )
    assert priced.status_code == 200, priced.text
    assert priced.json()["product_code"] == "P-TEE-M-RED"

    listing = client.get(f"/suppliers/{supplier_id}/products", headers=_headers(tenant_id, role="staff"))
    assert listing.json()["items"] == [
        {
            "product_id": product_id,
            "product_code": "P-TEE-M-RED",
            "name": "Tee TEE-M-RED",
            "price": 11.5,
            "updated_at": listing.json()["items"][0]["updated_at"],
        }
    ]

    staff_price = client.delete(
        f"/suppliers/{supplier_id}/pricing/{product_id}", headers=_headers(tenant_id, role="staff")
    )
    assert staff_price.status_code == 403
    removed = client.delete(f"/suppliers/{supplier_id}/pricing/{product_id}", headers=_headers(tenant_id, role="manager"))
    assert removed.status_code == 204
    assert client.get(f"/suppliers/{supplier_id}/products", headers=_headers(tenant_id)).json()["items"] == []

    deactivated = client.put(
        f"/suppliers/{supplier_id}",
        json={"status": "inactive", "contact_phone": "+1 555 0100"},
        headers=_headers(tenant_id, role="manager"),
    )
    assert deactivated.status_code == 200, deactivated.text
    assert deactivated.json()["status"] == "inactive"
    assert deactivated.json()["contact_phone"] == "+1 555 0100"
    assert deactivated.json()["name"] == "Acme Textiles"

    blocked = client.post(
        "/purchase-orders",
        json={"supplier_id": supplier_id, "lines": [{"variant_id": variant_id, "quantity_ordered": 1, "expected_price": 2}]},
        headers=_headers(tenant_id),
    )
    assert blocked.status_code == 400
    assert blocked.json()["error"]["details"]["supplier_status"] == "inactive"

    bad_status = client.put(f"/suppliers/{supplier_id}", json={"status": "paused"}, headers=_headers(tenant_id))
    assert bad_status.status_code == 422

    assert client.delete(f"/suppliers/{supplier_id}", headers=_headers(tenant_id, role="manager")).status_code == 403
    assert client.delete(f"/suppliers/{supplier_id}", headers=_headers(tenant_id)).status_code == 204
    assert client.get(f"/suppliers/{supplier_id}", headers=_headers(tenant_id)).status_code == 404


def test_supplier_with_orders_is_in_use(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)
    _, variant_id = _create_variant(client, tenant_id)
    supplier_id = _create_supplier(client, tenant_id)
    client.post(
        "/purchase-orders",
        json={"supplier_id": supplier_id, "lines": [{"variant_id": variant_id, "quantity_ordered": 1, "expected_price": 2}]},
        headers=_headers(tenant_id),
    )

    res = client.delete(f"/suppliers/{supplier_id}", headers=_headers(tenant_id))
    assert res.status_code == 409
    body = res.json()["error"]
    assert body["code"] == "record_in_use"
    assert body["details"]["referenced_by"] == "purchase_orders"


def test_analytics_endpoints(test_context):
    client, session_local = test_context
    tenant_id = _tenant(session_local)
    product_id, _ = _create_variant(client, tenant_id, sku="TEE-S", opening_stock=4, price=10.0)

    override = client.put(
        f"/products/{product_id}/pricing/tee-s",
        json={"price": 12.5},
        headers=_headers(tenant_id),
    )
    assert override.status_code == 200, override.text
    assert override.json()["sku"] == "TEE-S"

    value = client.get("/analytics/inventory-value", headers=_headers(tenant_id, role="manager"))
    assert value.status_code == 200
    assert value.json() == {"total_value": 50.0, "total_units": 4, "variant_count": 1}

    staff_value = client.get("/analytics/inventory-value", headers=_headers(tenant_id, role="staff"))
    assert staff_value.status_code == 403

    low = client.get("/analytics/low-stock", params={"threshold": 5}, headers=_headers(tenant_id, role="staff"))
    assert low.status_code == 200
    assert low.json()["threshold"] == 5
    assert low.json()["items"][0]["price"] == 12.5

    series = client.get("/analytics/movement-series", params={"days": 3}, headers=_headers(tenant_id))
    assert series.status_code == 200
    points = series.json()["items"]
    assert len(points) == 3
    assert set(points[0]) == {"date", "purchase", "sale", "return", "adjustment"}

    dashboard = client.get("/analytics/dashboard", headers=_headers(tenant_id))
    assert dashboard.status_code == 200
    assert dashboard.json()["inventory_value"]["total_units"] == 4

    staff_dashboard = client.get("/analytics/dashboard", headers=_headers(tenant_id, role="staff"))
    assert staff_dashboard.status_code == 200
    assert staff_dashboard.json()["inventory_value"] is None
    assert staff_dashboard.json()["low_stock_items"][0]["variant_sku"] == "TEE-S"
