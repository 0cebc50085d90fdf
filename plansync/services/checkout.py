"""Checkout orchestration — bind a tenant to a customer and open a checkout session."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from plansync.core.errors import ConfigurationError, PlanNotAllowedError, ProviderError
from plansync.core.plans import BillingCycle, get_catalog
from plansync.services import billing_provider
from plansync.services.profiles import get_or_create_profile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutResult:
    session_id: str
    url: str


async def create_checkout(
    session: AsyncSession,
    tenant_id: uuid.UUID,
    email: str | None,
    plan_id: str,
    billing_cycle: BillingCycle,
) -> CheckoutResult:
    """Create a subscription checkout session for ``plan_id``.

    The customer id is persisted before the session is created, so a crash in
    between leaves a profile that the next attempt reuses.
    """
    catalog = get_catalog()
    plan = catalog.lookup(plan_id)
    if plan is None:
        raise PlanNotAllowedError(f"Unknown plan: {plan_id}")
    if plan.is_free:
        raise PlanNotAllowedError("The free plan does not require checkout")

    price_id = catalog.price_id(plan.plan_id, billing_cycle)
    if price_id is None:
        raise ConfigurationError(
            f"No price configured for plan {plan.plan_id} ({billing_cycle})"
        )

    profile = await get_or_create_profile(session, tenant_id)
    customer_id = profile.external_customer_id
    if customer_id is None:
        customer_id = await billing_provider.create_customer(str(tenant_id), email)
        profile.external_customer_id = customer_id
        profile.touch()
        session.add(profile)
        await session.commit()
        logger.info("Created billing customer %s for tenant %s", customer_id, tenant_id)

    metadata = {
        "tenant_id": str(tenant_id),
        "plan_id": str(plan.plan_id),
        "billing_cycle": str(billing_cycle),
    }
    checkout = await billing_provider.create_checkout_session(
        customer_id=customer_id,
        price_id=price_id,
        metadata=metadata,
        client_reference_id=str(tenant_id),
    )
    if not checkout.url:
        raise ProviderError("Billing provider returned a checkout session without a URL")

    logger.info(
        "Opened checkout %s for tenant %s (plan=%s, cycle=%s)",
        checkout.id, tenant_id, plan.plan_id, billing_cycle,
    )
    return CheckoutResult(session_id=checkout.id, url=checkout.url)
