from sqlalchemy import text

from stockroom.core.errors import DomainError
from stockroom.core.observability import (
    domain_exception_handler,
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from stockroom.core.config import settings
from stockroom.db.session import engine
from stockroom.routers import adjustments, branches, front_stock, items, stock, transfers, units

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Inventory core for a multi-branch retail backend.\n\n"
        "Stock is kept per branch and item in base units. Items are sold through variants "
        "whose conversion amount says how many base units one of them holds.\n\n"
        "Pass `X-Actor-Id` to attribute writes in the audit trail."
    ),
    swagger_ui_parameters={
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "branches", "description": "Branch references used as stock locations."},
        {"name": "units", "description": "Units of measure usable by variants."},
        {"name": "items", "description": "Item catalog, variants, conversion amounts and prices."},
        {"name": "stock", "description": "Per-branch stock levels and movement history."},
        {"name": "front-stock", "description": "Shelf moves between the rear and front of a branch."},
        {"name": "transfers", "description": "Branch-to-branch stock transfers and their voids."},
        {"name": "adjustments", "description": "Stock-take adjustments against physical counts and their voids."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(DomainError, domain_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins
env_value = settings.env.lower().strip()
allow_origin_regex = settings.cors_origin_regex

if (
    not allow_origin_regex
    and env_value in {"dev", "development", "staging", "stage"}
):
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(branches.router)
app.include_router(units.router)
app.include_router(items.router)
app.include_router(front_stock.router)
app.include_router(stock.router)
app.include_router(transfers.router)
app.include_router(adjustments.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
    }


@app.get("/health", tags=["health"])
def health():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        return {"ok": False, "database": "unreachable"}
    return {"ok": True, "database": "ok"}
