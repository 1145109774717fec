"""Structured JSON-line logging, request correlation and the HTTP error envelope.

Every log record on the ``stockflow`` logger tree is a single JSON object. The
request middleware binds a request id to the current context so that domain
log lines written deep inside the services carry the same id as the access
log line and the error body returned to the caller.
"""

import json
import logging
import time
import traceback
from contextvars import ContextVar
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stockflow.core.config import settings
from stockflow.core.errors import InventoryError

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
package_logger = logging.getLogger("stockflow")
logger = logging.getLogger("stockflow.api")

HTTP_ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "conflict",
    422: "validation_error",
}


def setup_observability() -> None:
    if package_logger.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(handler)
    package_logger.setLevel(settings.log_level)
    package_logger.propagate = False


def get_request_id() -> str:
    return request_id_ctx.get()


def log_event(
    target: logging.Logger, event: str, *, level: int = logging.INFO, exc_info: bool = False, **fields: Any
) -> None:
    """Write one JSON line; the active request id is attached when there is one."""
    record = {"event": event, **fields}
    request_id = get_request_id()
    if request_id != "-":
        record.setdefault("request_id", request_id)
    target.log(level, json.dumps(record, default=str), exc_info=exc_info)


def _request_id_for(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id") or get_request_id()


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: list[dict] | dict | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = {
        "code": code,
        "message": message,
        "request_id": _request_id_for(request),
        "path": request.url.path,
        "details": details,
    }
    return JSONResponse(status_code=status_code, headers=headers, content={"error": body})


async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    request.state.request_id = request_id
    token = request_id_ctx.set(request_id)
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        log_event(
            logger,
            "request",
            tenant_id=request.headers.get("x-tenant-id"),
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        request_id_ctx.reset(token)

    response.headers["X-Request-ID"] = request_id
    return response


async def inventory_error_handler(request: Request, exc: InventoryError):
    log_event(logger, "domain_error", path=request.url.path, code=exc.code, status_code=exc.status_code)
    # Details may hold Decimals or datetimes; round-trip through JSON to get plain values.
    details = json.loads(json.dumps(exc.details, default=str)) or None
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=details,
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    if isinstance(exc.detail, str):
        message, details = exc.detail, None
    else:
        message, details = "HTTP error", exc.detail
    return error_response(
        request,
        status_code=exc.status_code,
        code=HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
        message=message,
        details=details,
        headers=exc.headers,
    )


def _validation_issue(err: dict) -> dict:
    location = [str(part) for part in err.get("loc", []) if part != "body"]
    return {
        "field": ".".join(location) if location else "body",
        "message": err.get("msg", "Invalid value"),
        "type": err.get("type"),
    }


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        request,
        status_code=422,
        code="validation_error",
        message="Validation failed",
        details=[_validation_issue(err) for err in exc.errors()],
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    log_event(
        logger,
        "unhandled_exception",
        level=logging.ERROR,
        request_id=_request_id_for(request),
        path=request.url.path,
        error=str(exc),
        traceback=traceback.format_exc(limit=10),
    )
    return error_response(request, status_code=500, code="internal_error", message="Internal server error")


def register_error_handlers(app: FastAPI) -> None:
    # Most specific first; the catch-all only sees what nothing else handled.
    app.add_exception_handler(InventoryError, inventory_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
