"""Periodic job — re-apply plan quotas to every tenant.

Webhook-driven enforcement can be skipped when a database error interrupts it
after the plan change was saved; this sweep converges those tenants.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from plansync.core.database import async_session_factory
from plansync.core.plans import PlanId
from plansync.models.billing_profile import BillingProfile
from plansync.models.tenant import Tenant
from plansync.services.quota import enforce_quota

logger = logging.getLogger(__name__)


async def enforce_all_quotas(ctx: dict) -> dict:
    """Periodic job: archive excess products for every active tenant.

    Tenants without a billing profile are on the free plan.
    """
    checked = 0
    archived = 0

    async with async_session_factory() as session:
        stmt = (
            select(Tenant.id, BillingProfile.plan_id)
            .outerjoin(BillingProfile, BillingProfile.tenant_id == Tenant.id)
            .where(Tenant.is_active == True)  # noqa: E712
        )
        rows = (await session.execute(stmt)).all()

        for tenant_id, plan_id in rows:
            checked += 1
            try:
                archived += await enforce_quota(session, tenant_id, plan_id or PlanId.FREE)
            except SQLAlchemyError:
                await session.rollback()
                logger.exception("Quota sweep failed for tenant %s", tenant_id)

    logger.info("Quota sweep: checked %d tenants, archived %d products", checked, archived)
    return {"tenants_checked": checked, "archived": archived}
