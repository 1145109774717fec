from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockflow.schemas.common import PaginationMeta


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    product_code: str = Field(min_length=1, max_length=60)
    base_price: Decimal = Field(default=Decimal("0"), ge=0)
    description: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name is required")
        return cleaned

    @field_validator("product_code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        cleaned = value.strip().upper()
        if not cleaned:
            raise ValueError("product_code is required")
        return cleaned

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Classic T-Shirt",
                "product_code": "TSHIRT",
                "base_price": 25.0,
                "description": "Heavyweight cotton tee",
            }
        }
    )


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    base_price: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name cannot be blank")
        return cleaned

    model_config = ConfigDict(
        json_schema_extra={"example": {"name": "Classic Crew Tee", "base_price": 27.5}}
    )


class VariantCreate(BaseModel):
    sku: str = Field(min_length=1, max_length=100)
    size: str = Field(min_length=1, max_length=50)
    color: str = Field(min_length=1, max_length=50)
    opening_stock: int = Field(default=0, ge=0)

    @field_validator("sku", "size", "color")
    @classmethod
    def strip_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("value is required")
        return cleaned

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "sku": "TSHIRT-M-RED",
                "size": "M",
                "color": "Red",
                "opening_stock": 10,
            }
        }
    )


class PriceOverrideIn(BaseModel):
    price: Decimal = Field(ge=0)

    model_config = ConfigDict(json_schema_extra={"example": {"price": 30.0}})


class ProductOut(BaseModel):
    id: str
    name: str
    product_code: str
    base_price: float
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProductListOut(BaseModel):
    items: list[ProductOut]
    pagination: PaginationMeta


class VariantOut(BaseModel):
    id: str
    product_id: str
    sku: str
    size: str
    color: str
    stock: int
    reserved_stock: int
    available_stock: int
    created_at: Optional[datetime] = None


class VariantListOut(BaseModel):
    items: list[VariantOut]


class PriceOverrideOut(BaseModel):
    product_id: str
    sku: str
    price: float


class ProductDetailOut(ProductOut):
    variants: list[VariantOut]
