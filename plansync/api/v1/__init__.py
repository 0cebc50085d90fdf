"""V1 API router aggregation."""

from fastapi import APIRouter

from plansync.api.v1.accounts import router as accounts_router
from plansync.api.v1.billing import router as billing_router
from plansync.api.v1.checkout import router as checkout_router
from plansync.api.v1.products import router as products_router
from plansync.api.v1.stripe_webhooks import router as stripe_webhooks_router
from plansync.api.v1.system import router as system_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(accounts_router)
v1_router.include_router(billing_router)
v1_router.include_router(checkout_router)
v1_router.include_router(stripe_webhooks_router)
v1_router.include_router(products_router)
v1_router.include_router(system_router)
