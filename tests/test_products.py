"""Product CRUD, the plan-limit guard and platform fees."""

import uuid

import pytest
from httpx import AsyncClient

from plansync.core.plans import PlanId
from plansync.models.billing_profile import BillingProfile


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


async def _create(client: AsyncClient, headers: dict, title: str, price_cents: int = 5000):
    return await client.post(
        "/v1/products", json={"title": title, "price_cents": price_cents}, headers=headers,
    )


@pytest.mark.asyncio
async def test_create_and_get_product(client: AsyncClient):
    headers, tenant_id = await _bootstrap(client, "prod-crud")

    resp = await _create(client, headers, "Mug", price_cents=10000)
    assert resp.status_code == 201, resp.text
    product = resp.json()
    assert product["tenant_id"] == tenant_id
    assert product["status"] == "active"
    assert product["currency"] == "BRL"
    assert product["platform_fee_cents"] == 800  # free plan, 8%

    resp = await client.get(f"/v1/products/{product['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["title"] == "Mug"


@pytest.mark.asyncio
async def test_free_plan_blocks_fourth_product(client: AsyncClient):
    headers, _ = await _bootstrap(client, "prod-limit")
    for i in range(3):
        assert (await _create(client, headers, f"p{i}")).status_code == 201

    resp = await _create(client, headers, "p3")

    assert resp.status_code == 403
    assert "allows 3" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_pro_plan_allows_more_and_lowers_fee(client: AsyncClient, session):
    headers, tenant_id = await _bootstrap(client, "prod-pro")
    session.add(BillingProfile(tenant_id=uuid.UUID(tenant_id), plan_id=PlanId.PRO))
    await session.commit()

    for i in range(4):
        resp = await _create(client, headers, f"p{i}", price_cents=10000)
        assert resp.status_code == 201
    assert resp.json()["platform_fee_cents"] == 400


@pytest.mark.asyncio
async def test_archived_products_free_capacity(client: AsyncClient):
    headers, _ = await _bootstrap(client, "prod-archive")
    ids = [(await _create(client, headers, f"p{i}")).json()["id"] for i in range(3)]

    resp = await client.patch(
        f"/v1/products/{ids[0]}", json={"status": "archived"}, headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "archived"
    assert resp.json()["archived_at"] is not None

    assert (await _create(client, headers, "p3")).status_code == 201

    # Reactivating would exceed the limit again
    resp = await client.patch(f"/v1/products/{ids[0]}", json={"status": "active"}, headers=headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_list_products_with_status_filter(client: AsyncClient):
    headers, _ = await _bootstrap(client, "prod-list")
    ids = [(await _create(client, headers, f"p{i}")).json()["id"] for i in range(2)]
    await client.patch(f"/v1/products/{ids[1]}", json={"status": "archived"}, headers=headers)

    resp = await client.get("/v1/products", headers=headers)
    assert [p["id"] for p in resp.json()] == ids

    resp = await client.get("/v1/products", params={"status": "active"}, headers=headers)
    assert [p["id"] for p in resp.json()] == ids[:1]


@pytest.mark.asyncio
async def test_update_and_delete_product(client: AsyncClient):
    headers, _ = await _bootstrap(client, "prod-update")
    product_id = (await _create(client, headers, "Old")).json()["id"]

    resp = await client.patch(
        f"/v1/products/{product_id}", json={"title": "New", "price_cents": 2500}, headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["title"] == "New"
    assert resp.json()["platform_fee_cents"] == 200

    resp = await client.delete(f"/v1/products/{product_id}", headers=headers)
    assert resp.status_code == 204
    resp = await client.get(f"/v1/products/{product_id}", headers=headers)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_products_are_tenant_scoped(client: AsyncClient):
    headers_a, _ = await _bootstrap(client, "prod-iso-a")
    headers_b, _ = await _bootstrap(client, "prod-iso-b")
    product_id = (await _create(client, headers_a, "Secret")).json()["id"]

    resp = await client.get(f"/v1/products/{product_id}", headers=headers_b)
    assert resp.status_code == 404
    resp = await client.get("/v1/products", headers=headers_b)
    assert resp.json() == []
