from contextlib import asynccontextmanager

from sqlalchemy import text

from app.core.errors import CRMError
from app.core.observability import (
    crm_error_handler,
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.db.session import engine
from app.routers import ai, auth, campaigns, communication_log, customers, ingestion, orders, receipts, segments
from app.services.scheduler import build_scheduled_tasks, start_tasks, stop_tasks


@asynccontextmanager
async def lifespan(app: FastAPI):
    tasks = build_scheduled_tasks() if settings.scheduler_enabled else []
    start_tasks(tasks)
    try:
        yield
    finally:
        stop_tasks(tasks)


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Backend API for the Pulse marketing CRM.\n\n"
        "Swagger quick test flow:\n"
        "1. `POST /customers` and `POST /orders` to load data.\n"
        "2. Click **Authorize** and paste a Google ID token "
        "(any token works with `IDENTITY_PROVIDER=static`).\n"
        "3. `POST /segments`, `POST /campaigns`, then `POST /campaigns/{id}/send`.\n"
        "4. `POST /delivery-receipts` and watch `GET /communication-log` after the next reconcile tick."
    ),
    swagger_ui_parameters={
        "persistAuthorization": True,
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "auth", "description": "Current caller identity."},
        {"name": "customers", "description": "Customer ingestion and listing."},
        {"name": "orders", "description": "Order ingestion; rolls spend and last order date onto customers."},
        {"name": "ingestion", "description": "Status of queued ingestion jobs."},
        {"name": "segments", "description": "Rule-based audience segments and live audience preview."},
        {"name": "campaigns", "description": "Campaign creation and simulated dispatch."},
        {"name": "receipts", "description": "Vendor delivery receipt intake."},
        {"name": "communication-log", "description": "Per-recipient send records and delivery status."},
        {"name": "ai", "description": "Campaign message suggestions."},
    ],
    lifespan=lifespan,
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(CRMError, crm_error_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:5173"]
allow_all_origins = "*" in cors_origins
env_value = settings.env.lower().strip()
allow_origin_regex = settings.cors_origin_regex

if (
    not allow_origin_regex
    and env_value in {"dev", "development", "staging", "stage"}
):
    # Local frontends run on dynamic localhost ports.
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(customers.router)
app.include_router(orders.router)
app.include_router(ingestion.router)
app.include_router(segments.router)
app.include_router(campaigns.router)
app.include_router(receipts.router)
app.include_router(communication_log.router)
app.include_router(ai.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception:
        return {"ok": False}
    return {"ok": True}
