"""Billing overview, plan listing and downgrades."""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient

from plansync.core.plans import BillingCycle, PlanId
from plansync.models.base import utcnow
from plansync.models.billing_profile import BillingProfile, SubscriptionStatus
from plansync.models.product import Product
from plansync.services.billing_provider import SubscriptionInfo
from plansync.services.quota import count_active_products


async def _bootstrap(client: AsyncClient, slug: str):
    resp = await client.post("/v1/tenants", json={
        "tenant_name": f"{slug} Co",
        "tenant_slug": slug,
        "owner_email": f"owner@{slug}.com",
        "owner_password": "testpass123",
    })
    assert resp.status_code == 201
    data = resp.json()
    return {"Authorization": f"Bearer {data['api_token']}"}, data["tenant"]["id"]


def _subscription(interval: str = "month") -> SubscriptionInfo:
    return SubscriptionInfo(
        id="sub_dg",
        customer_id="cus_dg",
        status="active",
        price_id="price_business_monthly",
        interval=interval,
        current_period_end=1_900_000_000,
        schedule_id=None,
    )


async def _subscribed(session, tenant_id: str, plan_id: PlanId = PlanId.BUSINESS) -> BillingProfile:
    profile = BillingProfile(
        tenant_id=uuid.UUID(tenant_id),
        external_customer_id="cus_dg",
        external_subscription_id="sub_dg",
        plan_id=plan_id,
        subscription_status=SubscriptionStatus.ACTIVE,
        billing_cycle=BillingCycle.MONTHLY,
    )
    session.add(profile)
    await session.commit()
    return profile


@pytest.mark.asyncio
async def test_list_plans(client: AsyncClient):
    resp = await client.get("/v1/billing/plans")
    assert resp.status_code == 200
    plans = {p["plan_id"]: p for p in resp.json()}
    assert plans["free"]["resource_limit"] == 3
    assert plans["free"]["billing_cycles"] == []
    assert plans["business"]["resource_limit"] is None
    assert plans["pro"]["billing_cycles"] == ["monthly", "yearly"]


@pytest.mark.asyncio
async def test_subscription_overview_defaults_to_free(client: AsyncClient, session):
    headers, tenant_id = await _bootstrap(client, "bill-default")

    resp = await client.get("/v1/billing/subscription", headers=headers)

    assert resp.status_code == 200
    data = resp.json()
    assert data["profile"]["plan_id"] == "free"
    assert data["profile"]["subscription_status"] == "none"
    assert data["plan"]["resource_limit"] == 3
    assert data["active_products"] == 0
    # Reading never creates the row
    assert await session.get(BillingProfile, uuid.UUID(tenant_id)) is None


@pytest.mark.asyncio
async def test_downgrade_to_free_cancels_at_period_end(client: AsyncClient, session):
    headers, tenant_id = await _bootstrap(client, "bill-cancel")
    profile = await _subscribed(session, tenant_id)
    cancel = AsyncMock()

    with (
        patch(
            "plansync.services.billing_provider.retrieve_subscription",
            AsyncMock(return_value=_subscription()),
        ),
        patch("plansync.services.billing_provider.cancel_at_period_end", cancel),
    ):
        resp = await client.post(
            "/v1/billing/downgrade", json={"target_plan_id": "free"}, headers=headers,
        )

    assert resp.status_code == 200, resp.text
    assert resp.json()["effective_date"].startswith("2030-03-17")
    cancel.assert_awaited_once_with("sub_dg")
    await session.refresh(profile)
    assert profile.cancel_at_period_end is True
    # The plan itself changes when the subscription is deleted upstream
    assert profile.plan_id == "business"


@pytest.mark.asyncio
async def test_downgrade_to_paid_plan_schedules_change(client: AsyncClient, session):
    headers, tenant_id = await _bootstrap(client, "bill-schedule")
    await _subscribed(session, tenant_id)
    schedule = AsyncMock(return_value="sub_sched_1")

    with (
        patch(
            "plansync.services.billing_provider.retrieve_subscription",
            AsyncMock(return_value=_subscription(interval="year")),
        ),
        patch("plansync.services.billing_provider.schedule_price_change", schedule),
    ):
        resp = await client.post(
            "/v1/billing/downgrade", json={"target_plan_id": "pro"}, headers=headers,
        )

    assert resp.status_code == 200
    assert resp.json()["message"] == "Plan change scheduled"
    subscription, new_price = schedule.await_args.args
    assert subscription.id == "sub_dg"
    assert new_price == "price_pro_yearly"


@pytest.mark.asyncio
async def test_downgrade_to_same_plan_rejected(client: AsyncClient, session):
    headers, tenant_id = await _bootstrap(client, "bill-same")
    await _subscribed(session, tenant_id, PlanId.PRO)
    resp = await client.post(
        "/v1/billing/downgrade", json={"target_plan_id": "pro"}, headers=headers,
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_downgrade_unknown_plan_rejected(client: AsyncClient):
    headers, _ = await _bootstrap(client, "bill-unknown")
    resp = await client.post(
        "/v1/billing/downgrade", json={"target_plan_id": "gold"}, headers=headers,
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_downgrade_without_subscription_to_paid_rejected(client: AsyncClient):
    headers, _ = await _bootstrap(client, "bill-nosub")
    resp = await client.post(
        "/v1/billing/downgrade", json={"target_plan_id": "pro"}, headers=headers,
    )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "No active subscription to change"


@pytest.mark.asyncio
async def test_local_downgrade_without_subscription_enforces_quota(client: AsyncClient, session):
    headers, tenant_id = await _bootstrap(client, "bill-local")
    session.add(BillingProfile(tenant_id=uuid.UUID(tenant_id), plan_id=PlanId.PRO))
    base = utcnow() - timedelta(hours=1)
    for i in range(5):
        session.add(Product(
            tenant_id=uuid.UUID(tenant_id), title=f"t{i}", created_at=base + timedelta(minutes=i),
        ))
    await session.commit()

    resp = await client.post(
        "/v1/billing/downgrade", json={"target_plan_id": "free"}, headers=headers,
    )

    assert resp.status_code == 200
    assert resp.json()["archived_products"] == 2
    assert await count_active_products(session, uuid.UUID(tenant_id)) == 3
    profile = await session.get(BillingProfile, uuid.UUID(tenant_id))
    assert profile.plan_id == "free"
    assert profile.subscription_status == SubscriptionStatus.CANCELED
