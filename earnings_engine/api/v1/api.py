# earnings_engine/api/v1/api.py
from fastapi import APIRouter

from earnings_engine.api.v1.endpoints import admin, internal, payouts, webhooks

api_router = APIRouter()

api_router.include_router(payouts.router, prefix="/payouts")
api_router.include_router(admin.router, prefix="/admin/earnings")
api_router.include_router(internal.router)
api_router.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
