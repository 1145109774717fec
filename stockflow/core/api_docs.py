from stockflow.schemas.common import ErrorOut


_ERROR_EXAMPLES: dict[int, tuple[str, str, dict | None]] = {
    400: (
        "insufficient_stock",
        "Insufficient stock for TSHIRT-M-RED: requested 5, on hand 2",
        {"variant_id": "variant-id", "requested": 5, "current_stock": 2},
    ),
    401: ("unauthorized", "X-Tenant-ID and X-Actor-ID headers are required", None),
    403: ("forbidden", "Insufficient permission for this action", None),
    404: ("not_found", "Variant not found: variant-id", {"entity": "variant", "entity_id": "variant-id"}),
    409: (
        "concurrent_modification",
        "Purchase order status changed concurrently",
        {"purchase_order_id": "po-id", "expected_status": "sent"},
    ),
    422: ("validation_error", "Validation failed", None),
    500: ("internal_error", "Internal server error", None),
}


def error_responses(*status_codes: int) -> dict[int, dict]:
    responses: dict[int, dict] = {}
    for status_code in status_codes:
        code, message, details = _ERROR_EXAMPLES.get(status_code, ("http_error", "HTTP error", None))
        responses[status_code] = {
            "model": ErrorOut,
            "description": message,
            "content": {
                "application/json": {
                    "example": {
                        "error": {
                            "code": code,
                            "message": message,
                            "request_id": "request-id",
                            "path": "/inventory/movements",
                            "details": details,
                        }
                    }
                }
            },
        }
    return responses
