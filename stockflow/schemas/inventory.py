from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockflow.schemas.common import PaginationMeta


class StockMovementIn(BaseModel):
    variant_id: str
    movement_type: Literal["purchase", "sale", "return", "adjustment"]
    quantity: int = Field(
        ..., description="Sign is implied for purchase, return and sale. Adjustments keep their sign."
    )
    reference_id: Optional[str] = Field(default=None, max_length=36)
    reference_type: Optional[Literal["order", "purchase_order"]] = None
    notes: Optional[str] = Field(default=None, max_length=255)

    @field_validator("quantity")
    @classmethod
    def validate_non_zero_quantity(cls, value: int) -> int:
        if value == 0:
            raise ValueError("quantity cannot be zero")
        return value

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "variant_id": "variant-id-here",
                "movement_type": "adjustment",
                "quantity": -2,
                "notes": "2 pieces damaged during packaging",
            }
        }
    )


class ReservationIn(BaseModel):
    quantity: int = Field(gt=0)

    model_config = ConfigDict(json_schema_extra={"example": {"quantity": 3}})


class FulfillmentIn(BaseModel):
    quantity: int = Field(gt=0)
    reference_id: Optional[str] = Field(default=None, max_length=36)
    notes: Optional[str] = Field(default=None, max_length=255)

    model_config = ConfigDict(
        json_schema_extra={"example": {"quantity": 3, "reference_id": "order-id-here"}}
    )


class StockMovementOut(BaseModel):
    id: str
    product_id: str
    variant_id: str
    variant_sku: str
    movement_type: str
    quantity: int
    previous_stock: int
    new_stock: int
    reference_id: Optional[str] = None
    reference_type: Optional[str] = None
    notes: Optional[str] = None
    created_by: str
    created_at: datetime


class StockMovementListOut(BaseModel):
    items: list[StockMovementOut]
    pagination: PaginationMeta


class StockLevelOut(BaseModel):
    variant_id: str
    sku: str
    stock: int
    reserved_stock: int
    available_stock: int


class StockHistoryOut(BaseModel):
    variant_id: str
    product_id: str
    sku: str
    size: str
    color: str
    stock: int
    reserved_stock: int
    available_stock: int
    movements: list[StockMovementOut]
    pagination: PaginationMeta
