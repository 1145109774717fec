"""Tenant-scoped domain event fan-out.

Events are published only after the transaction that produced them has
committed. Delivery is best-effort and at-most-once: a failing subscriber is
logged and skipped, it never reaches back into the mutation that emitted the
event.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any

from stockflow.core.observability import log_event

logger = logging.getLogger("stockflow.events")

STOCK_CHANGED = "stock_changed"
PURCHASE_ORDER_CREATED = "purchase_order_created"
PURCHASE_ORDER_UPDATED = "purchase_order_updated"
PURCHASE_ORDER_STATUS_CHANGED = "purchase_order_status_changed"
RECEIPT_RECORDED = "receipt_recorded"

EVENT_NAMES = frozenset(
    {
        STOCK_CHANGED,
        PURCHASE_ORDER_CREATED,
        PURCHASE_ORDER_UPDATED,
        PURCHASE_ORDER_STATUS_CHANGED,
        RECEIPT_RECORDED,
    }
)

EventHandler = Callable[["DomainEvent"], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DomainEvent:
    name: str
    tenant_id: str
    payload: dict[str, Any]
    occurred_at: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.name not in EVENT_NAMES:
            raise ValueError(f"Unknown event name: {self.name}")
        if not self.tenant_id:
            raise ValueError("Events must be scoped to a tenant")

    def as_message(self) -> dict[str, Any]:
        return {
            "event": self.name,
            "tenant_id": self.tenant_id,
            "timestamp": self.occurred_at.isoformat(),
            **self.payload,
        }


class EventNotifier(ABC):
    @abstractmethod
    def publish(self, event: DomainEvent) -> None:
        ...


class NullEventNotifier(EventNotifier):
    def publish(self, event: DomainEvent) -> None:
        return None


class TenantEventHub(EventNotifier):
    """In-process hub; each subscriber only ever receives its own tenant's events."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[EventHandler]] = {}
        self._lock = Lock()

    def subscribe(self, tenant_id: str, handler: EventHandler) -> Callable[[], None]:
        if not tenant_id:
            raise ValueError("tenant_id is required to subscribe")
        with self._lock:
            self._subscribers.setdefault(tenant_id, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._subscribers.get(tenant_id, [])
                if handler in handlers:
                    handlers.remove(handler)
                if not handlers:
                    self._subscribers.pop(tenant_id, None)

        return unsubscribe

    def subscriber_count(self, tenant_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(tenant_id, []))

    def publish(self, event: DomainEvent) -> None:
        with self._lock:
            handlers = list(self._subscribers.get(event.tenant_id, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception:
                log_event(
                    logger,
                    "subscriber_failed",
                    level=logging.ERROR,
                    exc_info=True,
                    tenant_id=event.tenant_id,
                    event_name=event.name,
                )


def publish_after_commit(notifier: EventNotifier, events: Iterable[DomainEvent]) -> None:
    for event in events:
        try:
            notifier.publish(event)
        except Exception:
            log_event(
                logger,
                "publish_failed",
                level=logging.ERROR,
                exc_info=True,
                tenant_id=event.tenant_id,
                event_name=event.name,
            )


def _clean(payload: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


def stock_changed_event(
    *,
    tenant_id: str,
    variant_id: str,
    variant_sku: str,
    product_id: str,
    change: str,
    previous_stock: int,
    new_stock: int,
    reserved_stock: int,
    quantity: int,
    movement_id: str | None = None,
    movement_type: str | None = None,
    reference_id: str | None = None,
    reference_type: str | None = None,
) -> DomainEvent:
    return DomainEvent(
        name=STOCK_CHANGED,
        tenant_id=tenant_id,
        payload=_clean(
            {
                "variant_id": variant_id,
                "variant_sku": variant_sku,
                "product_id": product_id,
                "change": change,
                "movement_id": movement_id,
                "movement_type": movement_type,
                "quantity": int(quantity),
                "previous_stock": int(previous_stock),
                "new_stock": int(new_stock),
                "reserved_stock": int(reserved_stock),
                "available_stock": max(0, int(new_stock) - int(reserved_stock)),
                "reference_id": reference_id,
                "reference_type": reference_type,
            }
        ),
    )


def purchase_order_event(name: str, *, tenant_id: str, **payload: Any) -> DomainEvent:
    return DomainEvent(name=name, tenant_id=tenant_id, payload=_clean(payload))
