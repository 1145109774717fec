from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PaginationMeta(BaseModel):
    """Offset pagination block shared by every list endpoint."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"total": 120, "limit": 50, "offset": 50, "count": 50, "has_next": True}}
    )

    total: int = Field(ge=0)
    limit: int = Field(ge=1)
    offset: int = Field(ge=0)
    count: int = Field(ge=0)
    has_next: bool

    @classmethod
    def build(cls, *, total: int, limit: int, offset: int, count: int) -> "PaginationMeta":
        return cls(total=total, limit=limit, offset=offset, count=count, has_next=offset + count < total)


class ValidationIssueOut(BaseModel):
    field: str
    message: str
    type: str | None = None


class ErrorDetailOut(BaseModel):
    code: str = Field(description="Stable machine-readable error code, e.g. `insufficient_stock`.")
    message: str
    request_id: str = Field(description="Matches the `X-Request-ID` response header.")
    path: str
    # Field errors for 422 responses, domain context (quantities, ids) otherwise.
    details: list[ValidationIssueOut] | dict[str, Any] | None = None


class ErrorOut(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": {
                    "code": "over_receipt",
                    "message": "Cannot receive 7 of TSHIRT-M-RED: 6 of 10 already received",
                    "request_id": "8d8f2b00-6c79-4a45-8ff4-b0a5f2bc4bc2",
                    "path": "/purchase-orders/po-id/receipts",
                    "details": {
                        "line_id": "line-id",
                        "quantity_ordered": 10,
                        "quantity_already_received": 6,
                        "quantity_attempted": 7,
                    },
                }
            }
        }
    )

    error: ErrorDetailOut
