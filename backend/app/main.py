# backend/app/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute

from .api.dependencies.services import (
    get_notification_service,
    get_payment_gateway,
    get_video_platform,
)
from .core.config import settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_VERSION, BRAND_NAME
from .errors import register_error_handlers
from .routes.v1 import (
    admin as admin_v1,
    bookings as bookings_v1,
    health as health_v1,
    payments as payments_v1,
    prometheus as prometheus_v1,
    slots as slots_v1,
    webhooks_hundredms as webhooks_hundredms_v1,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build gateway clients once so bad credentials fail the boot, not a request."""
    logger.info(f"{BRAND_NAME} booking core starting up...")
    logger.info(f"Environment: {settings.environment} (SITE_MODE={settings.site_mode})")

    payment_gateway = get_payment_gateway()
    video_platform = get_video_platform()
    get_notification_service()
    logger.info(
        "Gateways ready: payments=%s video=%s",
        type(payment_gateway).__name__,
        type(video_platform).__name__,
    )

    yield

    logger.info(f"{BRAND_NAME} booking core shutting down...")


def _unique_operation_id(route: APIRoute) -> str:
    methods = "_".join(sorted(m.lower() for m in route.methods or []))
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "").strip("_")
    name = (route.name or "operation").lower().replace(" ", "_")
    return f"{methods}__{path}__{name}".strip("_")


def _compute_allowed_origins() -> list[str]:
    return [o.strip() for o in settings.cors_allow_origins_csv.split(",") if o.strip()]


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
    generate_unique_id_function=_unique_operation_id,
)
# Register unified error envelope handlers
register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_compute_allowed_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

# Create API v1 router
api_v1 = APIRouter(prefix="/api/v1")

api_v1.include_router(slots_v1.router, prefix="/slots")
api_v1.include_router(bookings_v1.router, prefix="/bookings")
api_v1.include_router(payments_v1.router, prefix="/payments")
api_v1.include_router(admin_v1.router, prefix="/admin")
api_v1.include_router(webhooks_hundredms_v1.router, prefix="/webhooks/hundredms")
api_v1.include_router(health_v1.router, prefix="/health")
api_v1.include_router(prometheus_v1.router, prefix="/metrics")

app.include_router(api_v1)
# Unversioned health check for load balancers
app.include_router(health_v1.router, prefix="/health", include_in_schema=False)


@app.get("/")
def root() -> dict[str, str]:
    return {"message": f"{BRAND_NAME} booking core", "version": API_VERSION}
