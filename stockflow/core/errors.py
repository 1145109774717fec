"""Domain errors raised by the inventory core.

Every error carries an HTTP-ish ``status_code``, a stable machine ``code`` and a
``details`` mapping naming the entity and the limit that was hit, so callers can
act on the failure without parsing the message.
"""

from typing import Any


class InventoryError(Exception):
    status_code = 400
    code = "bad_request"

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = {key: value for key, value in details.items() if value is not None}
        super().__init__(message)


class NotFoundError(InventoryError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id: str | None = None, **details: Any):
        message = f"{entity} not found" if entity_id is None else f"{entity} not found: {entity_id}"
        super().__init__(message, entity=entity.lower().replace(" ", "_"), entity_id=entity_id, **details)


class ValidationError(InventoryError):
    code = "validation_error"


class InsufficientStockError(InventoryError):
    code = "insufficient_stock"


class InsufficientAvailableStockError(InsufficientStockError):
    code = "insufficient_available_stock"


class InsufficientReservedStockError(InsufficientStockError):
    code = "insufficient_reserved_stock"


class OverReceiptError(InventoryError):
    code = "over_receipt"


class InvalidTransitionError(InventoryError):
    code = "invalid_transition"


class ManualReceivedNotAllowedError(InvalidTransitionError):
    code = "manual_received_not_allowed"


class ReceiptBeforeSendNotAllowedError(InvalidTransitionError):
    code = "receipt_before_send_not_allowed"


class PurchaseOrderLockedError(InventoryError):
    code = "purchase_order_locked"


class DuplicateKeyError(InventoryError):
    status_code = 409
    code = "duplicate_key"


class ConcurrentModificationError(InventoryError):
    status_code = 409
    code = "concurrent_modification"


class RecordInUseError(InventoryError):
    status_code = 409
    code = "record_in_use"
