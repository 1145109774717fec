import threading

import pytest
from sqlalchemy import func, select

from conftest import RecordingNotifier, make_tenant, make_variant
from stockflow.core.errors import (
    InsufficientAvailableStockError,
    InsufficientReservedStockError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from stockflow.models.inventory import StockMovement
from stockflow.services import movement_ledger, stock_service, tenant_service
from stockflow.services.variant_store import get_variant


def _movement_count(db, variant_id: str) -> int:
    return int(
        db.execute(select(func.count(StockMovement.id)).where(StockMovement.variant_id == variant_id)).scalar_one()
    )


def test_normalize_quantity_applies_sign_convention():
    assert stock_service.normalize_quantity("purchase", -4) == 4
    assert stock_service.normalize_quantity("return", 2) == 2
    assert stock_service.normalize_quantity("sale", 3) == -3
    assert stock_service.normalize_quantity("sale", -3) == -3
    assert stock_service.normalize_quantity("adjustment", -2) == -2
    assert stock_service.normalize_quantity("adjustment", 5) == 5

    with pytest.raises(ValidationError):
        stock_service.normalize_quantity("sale", 0)
    with pytest.raises(ValidationError):
        stock_service.normalize_quantity("transfer", 1)


def test_opening_stock_is_booked_as_adjustment(db, notifier):
    tenant = make_tenant(db)
    _, variant = make_variant(db, tenant.id, opening_stock=10, notifier=notifier)

    assert variant.stock == 10
    movements, total = movement_ledger.query_by_variant(db, tenant_id=tenant.id, variant_id=variant.id)
    assert total == 1
    assert movements[0].movement_type == "adjustment"
    assert movements[0].previous_stock == 0
    assert movements[0].new_stock == 10
    assert notifier.names() == ["stock_changed"]


def test_mutate_stock_appends_ledger_and_publishes(db, notifier):
    tenant = make_tenant(db)
    _, variant = make_variant(db, tenant.id, opening_stock=10)

    movement = stock_service.mutate_stock(
        db,
        tenant_id=tenant.id,
        actor_id="clerk-1",
        variant_id=variant.id,
        quantity=4,
        movement_type="sale",
        reference_id="order-1",
        reference_type="order",
        notifier=notifier,
    )

    assert movement.quantity == -4
    assert movement.previous_stock == 10
    assert movement.new_stock == 6
    assert movement.created_by == "clerk-1"
    assert get_variant(db, tenant.id, variant.id, refresh=True).stock == 6

    assert len(notifier.events) == 1
    event = notifier.events[0]
    assert event.tenant_id == tenant.id
    assert event.payload["change"] == "movement"
    assert event.payload["new_stock"] == 6
    assert event.payload["reference_type"] == "order"


def test_scenario_a_reserve_then_fulfill(db, notifier):
    tenant = make_tenant(db)
    _, variant = make_variant(db, tenant.id, opening_stock=10)

    levels = stock_service.reserve_stock(
        db,
        tenant_id=tenant.id,
        actor_id="actor-1",
        variant_id=variant.id,
        quantity=5,
        notifier=notifier,
    )
    assert levels.stock == 10
    assert levels.reserved_stock == 5
    assert levels.available_stock == 5

    movement = stock_service.fulfill_stock(
        db,
        tenant_id=tenant.id,
        actor_id="actor-1",
        variant_id=variant.id,
        quantity=5,
        reference_id="order-9",
        notifier=notifier,
    )
    refreshed = get_variant(db, tenant.id, variant.id, refresh=True)
    assert refreshed.stock == 5
    assert refreshed.reserved_stock == 0
    assert movement.movement_type == "sale"
    assert movement.quantity == -5
    assert [event.payload["change"] for event in notifier.events] == ["reserve", "fulfill"]


def test_scenario_b_oversell_leaves_no_trace(db, notifier):
    tenant = make_tenant(db)
    _, variant = make_variant(db, tenant.id, opening_stock=3)
    before = _movement_count(db, variant.id)

    with pytest.raises(InsufficientStockError) as exc_info:
        stock_service.mutate_stock(
            db,
            tenant_id=tenant.id,
            actor_id="actor-1",
            variant_id=variant.id,
            quantity=-5,
            movement_type="sale",
            notifier=notifier,
        )

    assert exc_info.value.details["requested"] == 5
    assert exc_info.value.details["current_stock"] == 3
    assert get_variant(db, tenant.id, variant.id, refresh=True).stock == 3
    assert _movement_count(db, variant.id) == before
    assert notifier.events == []


def test_negative_adjustment_cannot_dip_into_reserved_stock(db, notifier):
    tenant = make_tenant(db)
    _, variant = make_variant(db, tenant.id, opening_stock=10)
    stock_service.reserve_stock(
        db, tenant_id=tenant.id, actor_id="actor-1", variant_id=variant.id, quantity=8, notifier=notifier
    )

    with pytest.raises(InsufficientStockError):
        stock_service.mutate_stock(
            db,
            tenant_id=tenant.id,
            actor_id="actor-1",
            variant_id=variant.id,
            quantity=-3,
            movement_type="adjustment",
            notifier=notifier,
        )

    refreshed = get_variant(db, tenant.id, variant.id, refresh=True)
    assert refreshed.stock == 10
    assert refreshed.reserved_stock == 8


def test_reserve_beyond_available_fails(db, notifier):
    tenant = make_tenant(db)
    _, variant = make_variant(db, tenant.id, opening_stock=4)

    with pytest.raises(InsufficientAvailableStockError) as exc_info:
        stock_service.reserve_stock(
            db, tenant_id=tenant.id, actor_id="actor-1", variant_id=variant.id, quantity=5, notifier=notifier
        )
    assert exc_info.value.details["available_stock"] == 4
    assert get_variant(db, tenant.id, variant.id, refresh=True).reserved_stock == 0


def test_release_and_fulfill_require_reserved_stock(db, notifier):
    tenant = make_tenant(db)
    _, variant = make_variant(db, tenant.id, opening_stock=6)
    stock_service.reserve_stock(
        db, tenant_id=tenant.id, actor_id="actor-1", variant_id=variant.id, quantity=2, notifier=notifier
    )

    with pytest.raises(InsufficientReservedStockError):
        stock_service.release_stock(
            db, tenant_id=tenant.id, actor_id="actor-1", variant_id=variant.id, quantity=3, notifier=notifier
        )
    with pytest.raises(InsufficientReservedStockError):
        stock_service.fulfill_stock(
            db, tenant_id=tenant.id, actor_id="actor-1", variant_id=variant.id, quantity=3, notifier=notifier
        )

    levels = stock_service.release_stock(
        db, tenant_id=tenant.id, actor_id="actor-1", variant_id=variant.id, quantity=2, notifier=notifier
    )
    assert levels.reserved_stock == 0
    assert levels.stock == 6

    with pytest.raises(ValidationError):
        stock_service.reserve_stock(
            db, tenant_id=tenant.id, actor_id="actor-1", variant_id=variant.id, quantity=0, notifier=notifier
        )


def test_ledger_replay_matches_stock(db, notifier):
    tenant = make_tenant(db)
    _, variant = make_variant(db, tenant.id, opening_stock=12)

    for quantity, movement_type in [(5, "purchase"), (3, "sale"), (-2, "adjustment"), (1, "return")]:
        stock_service.mutate_stock(
            db,
            tenant_id=tenant.id,
            actor_id="actor-1",
            variant_id=variant.id,
            quantity=quantity,
            movement_type=movement_type,
            notifier=notifier,
        )
    stock_service.reserve_stock(
        db, tenant_id=tenant.id, actor_id="actor-1", variant_id=variant.id, quantity=4, notifier=notifier
    )
    stock_service.fulfill_stock(
        db, tenant_id=tenant.id, actor_id="actor-1", variant_id=variant.id, quantity=4, notifier=notifier
    )

    refreshed = get_variant(db, tenant.id, variant.id, refresh=True)
    assert refreshed.stock == 9
    assert movement_ledger.replay_stock(db, tenant_id=tenant.id, variant_id=variant.id) == refreshed.stock

    history = movement_ledger.stock_history(db, tenant_id=tenant.id, variant_id=variant.id, limit=2)
    assert history.total == 6
    assert len(history.movements) == 2


def test_suspended_tenant_cannot_write(db, notifier):
    tenant = make_tenant(db)
    _, variant = make_variant(db, tenant.id, opening_stock=5)
    tenant_service.set_tenant_status(db, tenant_id=tenant.id, status="suspended")

    with pytest.raises(NotFoundError):
        stock_service.mutate_stock(
            db,
            tenant_id=tenant.id,
            actor_id="actor-1",
            variant_id=variant.id,
            quantity=1,
            movement_type="purchase",
            notifier=notifier,
        )
    assert get_variant(db, tenant.id, variant.id, refresh=True).stock == 5


def test_variants_are_invisible_across_tenants(db, notifier):
    tenant_a = make_tenant(db, "Tenant A")
    tenant_b = make_tenant(db, "Tenant B")
    _, variant = make_variant(db, tenant_a.id, opening_stock=5)

    with pytest.raises(NotFoundError):
        stock_service.mutate_stock(
            db,
            tenant_id=tenant_b.id,
            actor_id="actor-1",
            variant_id=variant.id,
            quantity=1,
            movement_type="purchase",
            notifier=notifier,
        )

    movements, total = movement_ledger.query_by_tenant(db, tenant_id=tenant_b.id)
    assert movements == []
    assert total == 0
    assert get_variant(db, tenant_a.id, variant.id, refresh=True).stock == 5


def test_concurrent_reserves_never_oversubscribe(file_session_local):
    setup = file_session_local()
    try:
        tenant = make_tenant(setup)
        _, variant = make_variant(setup, tenant.id, opening_stock=10)
        tenant_id, variant_id = tenant.id, variant.id
    finally:
        setup.close()

    barrier = threading.Barrier(5)
    outcomes: list[str] = []
    lock = threading.Lock()

    def worker():
        session = file_session_local()
        try:
            barrier.wait()
            stock_service.reserve_stock(
                session,
                tenant_id=tenant_id,
                actor_id="actor-1",
                variant_id=variant_id,
                quantity=3,
                notifier=RecordingNotifier(),
            )
            result = "ok"
        except InsufficientAvailableStockError:
            result = "insufficient"
        finally:
            session.close()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    check = file_session_local()
    try:
        refreshed = get_variant(check, tenant_id, variant_id)
        assert outcomes.count("ok") == 3
        assert outcomes.count("insufficient") == 2
        assert refreshed.reserved_stock == 9
        assert refreshed.reserved_stock <= refreshed.stock
    finally:
        check.close()
