"""System health endpoint — checks connectivity to backing services and billing config."""

import time

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from plansync.api.deps import Session
from plansync.core.config import get_settings
from plansync.core.plans import BillingCycle, get_catalog

router = APIRouter(prefix="/system", tags=["system"])

settings = get_settings()


class ServiceHealth(BaseModel):
    status: str  # "ok" or "error"
    detail: str | None = None
    version: str | None = None
    latency_ms: int | None = None


class BillingHealth(BaseModel):
    status: str
    secret_key_configured: bool
    webhook_secret_configured: bool
    configured_prices: int


class HealthResponse(BaseModel):
    status: str
    postgres: ServiceHealth
    redis: ServiceHealth
    billing: BillingHealth


@router.get("/health", response_model=HealthResponse)
async def system_health(session: Session) -> HealthResponse:
    """Check connectivity to Postgres and Redis, and whether Stripe is configured."""
    pg = await _check_postgres(session)
    rd = await _check_redis()
    billing = _check_billing()

    parts = (pg.status, rd.status, billing.status)
    overall = "ok" if all(s == "ok" for s in parts) else "degraded"
    return HealthResponse(status=overall, postgres=pg, redis=rd, billing=billing)


async def _check_postgres(session) -> ServiceHealth:
    try:
        t0 = time.monotonic()
        await session.execute(text("SELECT 1"))
        latency = int((time.monotonic() - t0) * 1000)
        # version() does not exist on SQLite
        version_short = None
        try:
            result = await session.execute(text("SELECT version()"))
            version_str = result.scalar_one_or_none() or ""
            version_short = version_str.split(",")[0] if version_str else None
        except Exception:
            await session.rollback()
        return ServiceHealth(status="ok", version=version_short, latency_ms=latency)
    except Exception as exc:
        return ServiceHealth(status="error", detail=str(exc)[:200])


async def _check_redis() -> ServiceHealth:
    try:
        from redis.asyncio import from_url
        t0 = time.monotonic()
        redis = from_url(settings.redis_url, decode_responses=True)
        pong = await redis.ping()
        latency = int((time.monotonic() - t0) * 1000)
        info = await redis.info("server")
        version = info.get("redis_version")
        await redis.aclose()
        return ServiceHealth(
            status="ok" if pong else "error",
            version=f"Redis {version}" if version else None,
            latency_ms=latency,
        )
    except Exception as exc:
        return ServiceHealth(status="error", detail=str(exc)[:200])


def _check_billing() -> BillingHealth:
    catalog = get_catalog()
    prices = sum(
        1
        for plan in catalog
        for cycle in BillingCycle
        if catalog.price_id(plan.plan_id, cycle) is not None
    )
    key_ok = bool(settings.stripe_secret_key)
    secret_ok = bool(settings.stripe_webhook_secret)
    return BillingHealth(
        status="ok" if key_ok and secret_ok and prices else "error",
        secret_key_configured=key_ok,
        webhook_secret_configured=secret_ok,
        configured_prices=prices,
    )
