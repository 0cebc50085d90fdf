"""Billing overview, plan listing and plan downgrades."""

import logging

from fastapi import APIRouter
from pydantic import BaseModel

from plansync.api.deps import Auth, Session
from plansync.core.errors import ConfigurationError, PlanNotAllowedError
from plansync.core.plans import BillingCycle, PlanId, get_catalog
from plansync.models.billing_profile import BillingProfileRead, SubscriptionStatus
from plansync.services import billing_provider
from plansync.services.profiles import default_profile, get_profile
from plansync.services.quota import count_active_products, enforce_quota

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


# ── Schemas ──────────────────────────────────────────────────

class PlanRead(BaseModel):
    plan_id: PlanId
    name: str
    resource_limit: int | None
    fee_percent: float
    billing_cycles: list[BillingCycle]


class SubscriptionOverview(BaseModel):
    profile: BillingProfileRead
    plan: PlanRead
    active_products: int


class DowngradeRequest(BaseModel):
    target_plan_id: str


class DowngradeResponse(BaseModel):
    message: str
    effective_date: str | None = None
    archived_products: int = 0


def _plan_read(plan) -> PlanRead:
    return PlanRead(
        plan_id=plan.plan_id,
        name=plan.name,
        resource_limit=plan.resource_limit,
        fee_percent=plan.fee_percent,
        billing_cycles=[cycle for cycle, price in plan.price_ids.items() if price],
    )


# ── Routes ───────────────────────────────────────────────────

@router.get("/plans", response_model=list[PlanRead])
async def list_plans() -> list[PlanRead]:
    return [_plan_read(plan) for plan in get_catalog()]


@router.get("/subscription", response_model=SubscriptionOverview)
async def get_subscription(auth: Auth, session: Session) -> SubscriptionOverview:
    """Current billing state; tenants without a profile see the free default."""
    profile = await get_profile(session, auth.tenant_id) or default_profile(auth.tenant_id)
    plan = get_catalog().lookup(profile.plan_id)
    if plan is None:
        raise ConfigurationError(f"Tenant is on unknown plan {profile.plan_id!r}")

    return SubscriptionOverview(
        profile=BillingProfileRead.model_validate(profile),
        plan=_plan_read(plan),
        active_products=await count_active_products(session, auth.tenant_id),
    )


@router.post("/downgrade", response_model=DowngradeResponse)
async def downgrade(body: DowngradeRequest, auth: Auth, session: Session) -> DowngradeResponse:
    """Move to a cheaper plan at the end of the current period.

    Without an upstream subscription only a move to the free plan is possible;
    it is applied locally and immediately, followed by quota enforcement.
    """
    catalog = get_catalog()
    target = catalog.lookup(body.target_plan_id)
    if target is None:
        raise PlanNotAllowedError(f"Unknown plan: {body.target_plan_id}")

    profile = await get_profile(session, auth.tenant_id)
    current = profile.plan_id if profile is not None else PlanId.FREE
    if current == target.plan_id:
        raise PlanNotAllowedError(f"Already on plan {target.plan_id}")

    if profile is None or profile.external_subscription_id is None:
        if not target.is_free:
            raise PlanNotAllowedError("No active subscription to change")
        # profile exists here: a tenant without one is already free
        profile.plan_id = PlanId.FREE
        profile.subscription_status = SubscriptionStatus.CANCELED
        profile.cancel_at_period_end = False
        profile.touch()
        session.add(profile)
        await session.commit()
        logger.info("Corrected tenant %s to free plan without subscription", auth.tenant_id)
        archived = await enforce_quota(session, auth.tenant_id, PlanId.FREE)
        return DowngradeResponse(message="Moved to the free plan", archived_products=archived)

    subscription = await billing_provider.retrieve_subscription(profile.external_subscription_id)
    effective = billing_provider.format_timestamp(subscription.current_period_end)

    if target.is_free:
        await billing_provider.cancel_at_period_end(subscription.id)
        profile.cancel_at_period_end = True
        profile.touch()
        session.add(profile)
        await session.commit()
        logger.info("Tenant %s scheduled cancellation of %s", auth.tenant_id, subscription.id)
        return DowngradeResponse(
            message="Subscription scheduled to cancel at period end",
            effective_date=effective,
        )

    cycle = BillingCycle.YEARLY if subscription.interval == "year" else BillingCycle.MONTHLY
    new_price = catalog.price_id(target.plan_id, cycle)
    if new_price is None:
        raise ConfigurationError(f"No price configured for plan {target.plan_id} ({cycle})")

    schedule_id = await billing_provider.schedule_price_change(subscription, new_price)
    logger.info(
        "Tenant %s scheduled change to %s via %s", auth.tenant_id, target.plan_id, schedule_id,
    )
    return DowngradeResponse(message="Plan change scheduled", effective_date=effective)
