# earnings_engine/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from earnings_engine.api.v1.api import api_router
from earnings_engine.core.config import settings
from earnings_engine.scheduler import init_scheduler, shutdown_scheduler
from earnings_engine.services.payment.provider_factory import get_payment_provider_factory

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Earnings engine starting up...")
    # Raises ConfigurationError without payment credentials
    get_payment_provider_factory()
    if settings.SCHEDULER_ENABLED:
        init_scheduler()
    yield
    logger.info("Earnings engine shutting down...")
    shutdown_scheduler()


app = FastAPI(
    title="Creator Earnings Engine",
    version="1.0.0",
    description="""
        **Creator Earnings Engine**

        Records confirmed creator payments, tracks balances and fee tiers,
        and pays creators out through Stripe Connect.

        ## Authentication

        Creator endpoints under `/payouts` require a JWT in the
        `Authorization: Bearer <token>` header. Admin and internal endpoints
        require the `X-Internal-Api-Key` header.
        """,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/")
def read_root():
    return {
        "status": "Earnings Engine is running",
        "providers": get_payment_provider_factory().list_providers(),
    }
