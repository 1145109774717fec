import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from stockflow.core.config import settings
from stockflow.core.observability import (
    log_event,
    logger,
    register_error_handlers,
    request_logging_middleware,
    setup_observability,
)
from stockflow.db.session import engine
from stockflow.routers import analytics, inventory, products, purchase_orders, suppliers
from stockflow.services.event_notifier import TenantEventHub

API_DESCRIPTION = (
    "Multi-tenant inventory ledger and purchase order receiving.\n\n"
    "Callers are resolved upstream; every request carries `X-Tenant-ID`, "
    "`X-Actor-ID` and `X-Actor-Role` (`owner`, `manager` or `staff`)."
)

OPENAPI_TAGS = [
    {"name": "health", "description": "Service status and quick links."},
    {"name": "products", "description": "Product catalog, variants and per-SKU pricing."},
    {"name": "suppliers", "description": "Supplier registry for purchase orders."},
    {"name": "inventory", "description": "Stock movements, reservations and stock levels."},
    {"name": "purchase-orders", "description": "Purchase order workflow and goods receipts."},
    {"name": "analytics", "description": "Valuation, low stock, top sellers and movement series."},
]

ROUTERS = (products, suppliers, inventory, purchase_orders, analytics)


def _add_cors(app: FastAPI) -> None:
    origins = settings.cors_origins or ["http://localhost:5173"]
    wildcard = "*" in origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if wildcard else origins,
        allow_origin_regex=settings.origin_regex,
        # Browsers reject credentialed responses for a wildcard origin.
        allow_credentials=not wildcard,
        allow_methods=["*"],
        allow_headers=["*"],
    )


setup_observability()

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=API_DESCRIPTION,
    openapi_tags=OPENAPI_TAGS,
    swagger_ui_parameters={"displayRequestDuration": True, "defaultModelsExpandDepth": 1},
)

# Subscribers register per tenant on this hub; the real-time transport attaches here.
app.state.event_notifier = TenantEventHub()

app.middleware("http")(request_logging_middleware)
register_error_handlers(app)
_add_cors(app)

for module in ROUTERS:
    app.include_router(module.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "environment": settings.environment,
        "links": {"docs": "/docs", "redoc": "/redoc", "health": "/health", "ready": "/ready"},
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        log_event(logger, "readiness_failed", level=logging.WARNING, error=str(exc))
        return JSONResponse(status_code=503, content={"ok": False})
    return {"ok": True}
