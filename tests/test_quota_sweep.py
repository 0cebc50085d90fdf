"""Tests for the periodic quota sweep."""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest

from plansync.core.plans import PlanId
from plansync.models.base import utcnow
from plansync.models.billing_profile import BillingProfile
from plansync.models.product import Product
from plansync.models.tenant import Tenant
from plansync.services.quota import count_active_products
from plansync.workers.quota_sweep import enforce_all_quotas


async def _tenant_with_products(session, slug: str, n: int, plan_id: PlanId | None = None):
    tenant = Tenant(name=f"{slug} Co", slug=slug)
    session.add(tenant)
    await session.flush()
    if plan_id is not None:
        session.add(BillingProfile(tenant_id=tenant.id, plan_id=plan_id))
    base = utcnow() - timedelta(hours=1)
    for i in range(n):
        session.add(Product(
            tenant_id=tenant.id, title=f"{slug}-{i}", created_at=base + timedelta(minutes=i),
        ))
    await session.commit()
    return tenant.id


async def _run_sweep(test_session_factory) -> dict:
    with patch("plansync.workers.quota_sweep.async_session_factory", test_session_factory):
        return await enforce_all_quotas({})


@pytest.mark.asyncio
async def test_sweep_enforces_every_tenant(session, test_session_factory):
    no_profile = await _tenant_with_products(session, "sweep-free", 5)
    on_pro = await _tenant_with_products(session, "sweep-pro", 12, PlanId.PRO)
    on_business = await _tenant_with_products(session, "sweep-biz", 15, PlanId.BUSINESS)

    result = await _run_sweep(test_session_factory)

    assert result == {"tenants_checked": 3, "archived": 4}
    assert await count_active_products(session, no_profile) == 3
    assert await count_active_products(session, on_pro) == 10
    assert await count_active_products(session, on_business) == 15


@pytest.mark.asyncio
async def test_sweep_skips_inactive_tenants(session, test_session_factory):
    tenant_id = await _tenant_with_products(session, "sweep-inactive", 5)
    tenant = await session.get(Tenant, tenant_id)
    tenant.is_active = False
    session.add(tenant)
    await session.commit()

    result = await _run_sweep(test_session_factory)

    assert result == {"tenants_checked": 0, "archived": 0}
    assert await count_active_products(session, tenant_id) == 5


@pytest.mark.asyncio
async def test_sweep_with_no_tenants(test_session_factory):
    assert await _run_sweep(test_session_factory) == {"tenants_checked": 0, "archived": 0}


@pytest.mark.asyncio
async def test_sweep_is_idempotent(session, test_session_factory):
    tenant_id = await _tenant_with_products(session, "sweep-twice", 4)

    first = await _run_sweep(test_session_factory)
    second = await _run_sweep(test_session_factory)

    assert first["archived"] == 1
    assert second["archived"] == 0
    assert await count_active_products(session, uuid.UUID(str(tenant_id))) == 3
