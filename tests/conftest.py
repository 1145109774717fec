import os
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")

import stockflow.models  # noqa: F401
from stockflow.core.deps import get_db
from stockflow.db.base import Base
from stockflow.main import app
from stockflow.services import catalog_service, purchase_order_service, tenant_service
from stockflow.services.event_notifier import EventNotifier, TenantEventHub


class RecordingNotifier(EventNotifier):
    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)

    def names(self) -> list[str]:
        return [event.name for event in self.events]


def _headers(tenant_id: str, actor_id: str = "actor-1", role: str = "owner") -> dict[str, str]:
    return {"X-Tenant-ID": tenant_id, "X-Actor-ID": actor_id, "X-Actor-Role": role}


def _memory_session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def test_context():
    engine, session_local = _memory_session_factory()

    def override_get_db():
        db = session_local()
        try:
            yield db
        finally:
            db.close()

    previous_notifier = app.state.event_notifier
    app.state.event_notifier = TenantEventHub()
    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, session_local

    app.dependency_overrides.clear()
    app.state.event_notifier = previous_notifier
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db():
    engine, session_local = _memory_session_factory()
    session = session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def file_session_local(tmp_path):
    # Threads need real separate connections, which an in-memory StaticPool cannot give.
    engine = create_engine(
        f"sqlite:///{tmp_path / 'stockflow.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


def make_tenant(db, name: str = "Acme Apparel"):
    return tenant_service.create_tenant(db, name=name)


def make_variant(
    db,
    tenant_id: str,
    *,
    sku: str = "TEE-M-RED",
    opening_stock: int = 0,
    base_price: Decimal | str = "25.00",
    product_code: str | None = None,
    size: str = "M",
    color: str = "Red",
    notifier: EventNotifier | None = None,
):
    product = catalog_service.create_product(
        db,
        tenant_id=tenant_id,
        actor_id="actor-1",
        name=f"Product {product_code or sku}",
        product_code=product_code or f"P-{sku}",
        base_price=base_price,
    )
    variant = catalog_service.create_variant(
        db,
        tenant_id=tenant_id,
        actor_id="actor-1",
        product_id=product.id,
        sku=sku,
        size=size,
        color=color,
        opening_stock=opening_stock,
        notifier=notifier or RecordingNotifier(),
    )
    return product, variant


def make_supplier(db, tenant_id: str, *, code: str = "ACME", status: str = "active"):
    return catalog_service.create_supplier(
        db,
        tenant_id=tenant_id,
        actor_id="actor-1",
        supplier_code=code,
        name=f"Supplier {code}",
        status=status,
    )


def make_purchase_order(
    db,
    tenant_id: str,
    supplier_id: str,
    lines: list[tuple[str, int, str]],
    *,
    status: str = "draft",
    notifier: EventNotifier | None = None,
    po_number: str | None = None,
):
    notifier = notifier or RecordingNotifier()
    order = purchase_order_service.create_purchase_order(
        db,
        tenant_id=tenant_id,
        actor_id="actor-1",
        supplier_id=supplier_id,
        lines=[
            purchase_order_service.LineInput(variant_id=variant_id, quantity_ordered=qty, expected_price=price)
            for variant_id, qty, price in lines
        ],
        po_number=po_number,
        notifier=notifier,
    )
    path = {"draft": [], "sent": ["sent"], "confirmed": ["sent", "confirmed"]}[status]
    for next_status in path:
        order = purchase_order_service.transition_status(
            db,
            tenant_id=tenant_id,
            actor_id="actor-1",
            po_id=order.id,
            new_status=next_status,
            notifier=notifier,
        )
    return order
