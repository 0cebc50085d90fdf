"""Quota enforcement — archive the newest active products above a plan's limit.

Oldest products are preserved (grandfathering by age). A single call archives
exactly the rows it selected; products created concurrently are picked up by
the next call.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from plansync.core.plans import get_catalog
from plansync.models.base import utcnow
from plansync.models.product import Product, ProductStatus

logger = logging.getLogger(__name__)


async def count_active_products(session: AsyncSession, tenant_id: uuid.UUID) -> int:
    stmt = (
        select(func.count())
        .select_from(Product)
        .where(Product.tenant_id == tenant_id, Product.status == ProductStatus.ACTIVE)
    )
    return (await session.execute(stmt)).scalar_one()


async def enforce_quota(session: AsyncSession, tenant_id: uuid.UUID, plan_id: str) -> int:
    """Bring the tenant's active products down to the plan limit.

    Returns:
        Number of products archived by this call.
    """
    plan = get_catalog().lookup(plan_id)
    if plan is None:
        logger.error("Quota enforcement skipped: plan %r not in catalog", plan_id)
        return 0
    if plan.resource_limit is None:
        return 0

    active = await count_active_products(session, tenant_id)
    limit = plan.resource_limit
    if active <= limit:
        return 0

    excess = active - limit
    logger.info(
        "Tenant %s has %d active products, plan %s allows %d; archiving %d",
        tenant_id, active, plan.plan_id, limit, excess,
    )

    stmt = (
        select(Product.id)
        .where(Product.tenant_id == tenant_id, Product.status == ProductStatus.ACTIVE)
        .order_by(Product.created_at.desc(), Product.id.desc())  # type: ignore[union-attr]
        .limit(excess)
        .with_for_update()
    )
    ids = list((await session.execute(stmt)).scalars().all())
    if not ids:
        await session.rollback()
        return 0

    now = utcnow()
    await session.execute(
        update(Product)
        .where(Product.id.in_(ids), Product.status == ProductStatus.ACTIVE)  # type: ignore[union-attr]
        .values(status=ProductStatus.ARCHIVED, archived_at=now, updated_at=now)
    )
    await session.commit()

    logger.info("Archived %d products for tenant %s: %s", len(ids), tenant_id, ids)
    return len(ids)
