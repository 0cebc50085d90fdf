"""Billing profile store — upsert-on-first-write and the checkout binding.

A tenant with no profile row is on the free plan with no subscription. The
row is created explicitly by ``get_or_create_profile`` the first time
billing state is written, never as a side effect of a read.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from plansync.core.plans import BillingCycle, PlanId, get_catalog
from plansync.models.billing_profile import BillingProfile, SubscriptionStatus
from plansync.models.tenant import Tenant
from plansync.services.billing_provider import CheckoutSessionInfo

logger = logging.getLogger(__name__)


def default_profile(tenant_id: uuid.UUID) -> BillingProfile:
    """Documented default state; not added to any session."""
    return BillingProfile(
        tenant_id=tenant_id,
        plan_id=PlanId.FREE,
        subscription_status=SubscriptionStatus.NONE,
    )


async def get_profile(session: AsyncSession, tenant_id: uuid.UUID) -> BillingProfile | None:
    return await session.get(BillingProfile, tenant_id)


async def get_profile_by_customer(
    session: AsyncSession, customer_id: str | None,
) -> BillingProfile | None:
    if not customer_id:
        return None
    stmt = select(BillingProfile).where(BillingProfile.external_customer_id == customer_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_or_create_profile(session: AsyncSession, tenant_id: uuid.UUID) -> BillingProfile:
    """Return the tenant's profile, inserting the default row if missing."""
    profile = await get_profile(session, tenant_id)
    if profile is not None:
        return profile

    profile = default_profile(tenant_id)
    session.add(profile)
    try:
        await session.commit()
    except IntegrityError:
        # A concurrent request inserted the row first
        await session.rollback()
        profile = await get_profile(session, tenant_id)
        if profile is None:
            raise
        return profile
    logger.info("Created billing profile for tenant %s", tenant_id)
    return profile


# ── Checkout binding (shared by webhook and session verifier) ─

@dataclass(frozen=True)
class CheckoutBinding:
    """Target state derived purely from a completed checkout session."""
    tenant_id: uuid.UUID
    plan_id: PlanId
    billing_cycle: BillingCycle | None
    customer_id: str | None
    subscription_id: str


def binding_from_session(checkout: CheckoutSessionInfo) -> CheckoutBinding | None:
    """Derive the binding from session metadata, or None when it cannot be attributed."""
    meta = checkout.metadata
    raw_tenant = meta.get("tenant_id")
    plan = get_catalog().lookup(meta.get("plan_id"))

    if not raw_tenant or not checkout.subscription_id:
        logger.warning(
            "Checkout session %s lacks tenant_id or subscription; cannot bind", checkout.id,
        )
        return None
    if plan is None:
        logger.error(
            "Checkout session %s references unknown plan %r", checkout.id, meta.get("plan_id"),
        )
        return None
    try:
        tenant_id = uuid.UUID(raw_tenant)
    except ValueError:
        logger.warning("Checkout session %s has malformed tenant_id %r", checkout.id, raw_tenant)
        return None

    cycle_raw = meta.get("billing_cycle")
    cycle = BillingCycle(cycle_raw) if cycle_raw in BillingCycle._value2member_map_ else None

    return CheckoutBinding(
        tenant_id=tenant_id,
        plan_id=plan.plan_id,
        billing_cycle=cycle,
        customer_id=checkout.customer_id,
        subscription_id=checkout.subscription_id,
    )


async def apply_checkout_binding(
    session: AsyncSession, binding: CheckoutBinding,
) -> BillingProfile | None:
    """Idempotently write the binding. Returns None if the tenant does not exist."""
    if await session.get(Tenant, binding.tenant_id) is None:
        logger.warning("Checkout binding for unknown tenant %s ignored", binding.tenant_id)
        return None

    # A customer belongs to exactly one tenant; a clash can never be applied
    owner = await get_profile_by_customer(session, binding.customer_id)
    if owner is not None and owner.tenant_id != binding.tenant_id:
        logger.error(
            "Customer %s is bound to tenant %s; checkout binding for tenant %s ignored",
            binding.customer_id, owner.tenant_id, binding.tenant_id,
        )
        return None

    profile = await get_or_create_profile(session, binding.tenant_id)

    if profile.external_customer_id is None:
        profile.external_customer_id = binding.customer_id
    elif binding.customer_id and profile.external_customer_id != binding.customer_id:
        logger.warning(
            "Tenant %s is bound to customer %s; ignoring customer %s from checkout",
            binding.tenant_id, profile.external_customer_id, binding.customer_id,
        )

    profile.external_subscription_id = binding.subscription_id
    profile.plan_id = binding.plan_id
    profile.subscription_status = SubscriptionStatus.ACTIVE
    profile.cancel_at_period_end = False
    if binding.billing_cycle is not None:
        profile.billing_cycle = binding.billing_cycle
    profile.touch()

    session.add(profile)
    await session.commit()
    logger.info(
        "Bound tenant %s to subscription %s on plan %s",
        binding.tenant_id, binding.subscription_id, binding.plan_id,
    )
    return profile
