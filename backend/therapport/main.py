# backend/therapport/main.py
"""
Therapport API application.

Run with ``uvicorn therapport.main:app``. Authentication is handled upstream:
the gateway middleware places ``user_id`` and ``role`` on ``request.state``.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Dict

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .core.config import is_running_tests, settings
from .core.constants import BRAND_NAME
from .errors import register_error_handlers
from .routes import prometheus
from .routes.v1 import bookings as bookings_v1
from .routes.v1 import credits as credits_v1
from .routes.v1 import rooms as rooms_v1
from .routes.v1 import subscriptions as subscriptions_v1
from .routes.v1 import webhooks_stripe as webhooks_stripe_v1

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info(f"{BRAND_NAME} API starting up (environment={settings.environment})")
    if not settings.stripe_configured:
        logger.warning("Stripe is not configured; bookings short of credit will be rejected")
    if is_running_tests():
        logger.info("Running under pytest (test mode active)")
    yield
    logger.info(f"{BRAND_NAME} API shutting down")


app = FastAPI(
    title=f"{BRAND_NAME} API",
    description="Room booking, credit ledger and membership API",
    version=__version__,
    lifespan=app_lifespan,
)

register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "OPTIONS", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)

api_v1 = APIRouter(prefix=settings.api_prefix)
api_v1.include_router(bookings_v1.router, prefix="/bookings")
api_v1.include_router(rooms_v1.router, prefix="/rooms")
api_v1.include_router(credits_v1.router, prefix="/credits")
api_v1.include_router(subscriptions_v1.router, prefix="/subscriptions")
api_v1.include_router(webhooks_stripe_v1.router, prefix="/webhooks/stripe")

app.include_router(api_v1)
app.include_router(prometheus.router)


@app.get("/health", include_in_schema=False)
async def health() -> Dict[str, str]:
    return {"status": "healthy", "service": f"{BRAND_NAME.lower()}-api", "version": __version__}
