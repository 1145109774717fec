from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from stockflow.schemas.common import PaginationMeta


class SupplierCreate(BaseModel):
    supplier_code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=255)
    contact_email: Optional[str] = Field(default=None, max_length=255)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=500)
    status: Literal["active", "inactive"] = "active"
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("supplier_code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        cleaned = value.strip().upper()
        if not cleaned:
            raise ValueError("supplier_code is required")
        return cleaned

    @field_validator("contact_email", "contact_phone", "address", "notes")
    @classmethod
    def normalize_optional_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "supplier_code": "ACME",
                "name": "Acme Textiles",
                "contact_email": "orders@acme.example",
                "status": "active",
            }
        }
    )


class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    contact_email: Optional[str] = Field(default=None, max_length=255)
    contact_phone: Optional[str] = Field(default=None, max_length=50)
    address: Optional[str] = Field(default=None, max_length=500)
    status: Optional[Literal["active", "inactive"]] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("contact_email", "contact_phone", "address", "notes")
    @classmethod
    def normalize_optional_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    model_config = ConfigDict(
        json_schema_extra={"example": {"status": "inactive", "contact_phone": "+1 555 0100"}}
    )


class SupplierOut(BaseModel):
    id: str
    supplier_code: str
    name: str
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SupplierListOut(BaseModel):
    items: list[SupplierOut]
    pagination: PaginationMeta


class SupplierPriceIn(BaseModel):
    product_id: str = Field(min_length=1, max_length=36)
    price: Decimal = Field(ge=0)

    model_config = ConfigDict(json_schema_extra={"example": {"product_id": "prod_123", "price": 11.5}})


class SupplierProductOut(BaseModel):
    product_id: str
    product_code: str
    name: str
    price: float
    updated_at: Optional[datetime] = None


class SupplierProductListOut(BaseModel):
    supplier_id: str
    items: list[SupplierProductOut]
