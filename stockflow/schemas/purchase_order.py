from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from stockflow.schemas.common import PaginationMeta


class PurchaseOrderLineIn(BaseModel):
    variant_id: str
    quantity_ordered: int = Field(gt=0)
    expected_price: Decimal = Field(ge=0)
    notes: Optional[str] = Field(default=None, max_length=255)


class PurchaseOrderCreate(BaseModel):
    supplier_id: str
    lines: list[PurchaseOrderLineIn] = Field(min_length=1)
    expected_delivery_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    po_number: Optional[str] = Field(default=None, max_length=40)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "supplier_id": "supplier-id-here",
                "expected_delivery_date": "2026-11-01",
                "lines": [
                    {"variant_id": "variant-id-here", "quantity_ordered": 10, "expected_price": 12.5},
                ],
            }
        }
    )


class PurchaseOrderUpdate(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=1000)
    expected_delivery_date: Optional[date] = None
    lines: Optional[list[PurchaseOrderLineIn]] = Field(default=None, min_length=1)

    model_config = ConfigDict(
        json_schema_extra={"example": {"notes": "Split delivery accepted", "expected_delivery_date": "2026-11-05"}}
    )


class PurchaseOrderStatusIn(BaseModel):
    status: str = Field(min_length=1, max_length=20)
    expected_status: Optional[Literal["draft", "sent", "confirmed", "received"]] = Field(
        default=None,
        description="Status the caller last observed; the change is rejected if it has moved on.",
    )

    model_config = ConfigDict(json_schema_extra={"example": {"status": "sent", "expected_status": "draft"}})


class ReceiptEntryIn(BaseModel):
    line_id: str
    quantity_received: int = Field(gt=0)
    actual_price: Decimal = Field(ge=0)


class ReceiptCreate(BaseModel):
    entries: list[ReceiptEntryIn] = Field(min_length=1)
    receipt_date: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    receipt_number: Optional[str] = Field(default=None, max_length=40)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "entries": [{"line_id": "line-id-here", "quantity_received": 6, "actual_price": 13.0}],
                "notes": "First pallet",
            }
        }
    )


class PurchaseOrderLineOut(BaseModel):
    id: str
    product_id: str
    variant_id: str
    variant_sku: str
    quantity_ordered: int
    quantity_received: int
    quantity_pending: int
    expected_price: float
    actual_total: float
    price_variance: float
    notes: Optional[str] = None


class ReceiptEntryOut(BaseModel):
    line_id: str
    quantity_received: int
    actual_price: float


class ReceiptOut(BaseModel):
    id: str
    purchase_order_id: str
    receipt_number: str
    receipt_date: datetime
    notes: Optional[str] = None
    created_by: str
    total_quantity: int
    total_amount: float
    entries: list[ReceiptEntryOut]


class ReceiptListOut(BaseModel):
    items: list[ReceiptOut]


class PurchaseOrderSummaryOut(BaseModel):
    id: str
    po_number: str
    supplier_id: str
    status: str
    order_date: datetime
    expected_delivery_date: Optional[date] = None
    total_amount: float
    version: int


class PurchaseOrderOut(PurchaseOrderSummaryOut):
    notes: Optional[str] = None
    created_by: str
    lines: list[PurchaseOrderLineOut]
    receipts: list[ReceiptOut]
    expected_total: float
    actual_total: float
    price_variance: float


class PurchaseOrderListOut(BaseModel):
    items: list[PurchaseOrderSummaryOut]
    pagination: PaginationMeta
