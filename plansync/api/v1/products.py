"""Product CRUD — all queries scoped to tenant_id, creation bounded by the plan limit."""

import uuid
from typing import Annotated

from fastapi import APIRouter, HTTPException, Query, status
from sqlmodel import select

from plansync.api.deps import Auth, Session
from plansync.core.errors import ConfigurationError, QuotaExceededError
from plansync.core.plans import PlanId, get_catalog
from plansync.models.base import utcnow
from plansync.models.product import (
    Product,
    ProductCreate,
    ProductRead,
    ProductStatus,
    ProductUpdate,
)
from plansync.services.fees import application_fee_cents
from plansync.services.profiles import get_profile
from plansync.services.quota import count_active_products

router = APIRouter(prefix="/products", tags=["products"])


# ── Helpers ───────────────────────────────────────────────────

async def _current_plan_id(session, tenant_id: uuid.UUID) -> str:
    profile = await get_profile(session, tenant_id)
    return profile.plan_id if profile is not None else PlanId.FREE


def _to_read(product: Product, plan_id: str) -> ProductRead:
    return ProductRead(
        **product.model_dump(),
        platform_fee_cents=application_fee_cents(plan_id, product.price_cents),
    )


async def _ensure_capacity(session, tenant_id: uuid.UUID, plan_id: str) -> None:
    """Reject activating one more product when the plan is already full."""
    plan = get_catalog().lookup(plan_id)
    if plan is None:
        raise ConfigurationError(f"Tenant is on unknown plan {plan_id!r}")
    if plan.resource_limit is None:
        return
    if await count_active_products(session, tenant_id) >= plan.resource_limit:
        raise QuotaExceededError(
            f"Plan {plan.plan_id} allows {plan.resource_limit} active products"
        )


async def _get_or_404(product_id: uuid.UUID, tenant_id: uuid.UUID, session) -> Product:
    stmt = select(Product).where(Product.id == product_id, Product.tenant_id == tenant_id)
    result = await session.execute(stmt)
    product = result.scalar_one_or_none()
    if product is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


# ── Routes ────────────────────────────────────────────────────

@router.post("", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(body: ProductCreate, auth: Auth, session: Session) -> ProductRead:
    plan_id = await _current_plan_id(session, auth.tenant_id)
    await _ensure_capacity(session, auth.tenant_id, plan_id)

    product = Product(
        tenant_id=auth.tenant_id,
        title=body.title,
        description=body.description,
        price_cents=body.price_cents,
        currency=body.currency.upper(),
    )
    session.add(product)
    await session.commit()
    await session.refresh(product)
    return _to_read(product, plan_id)


@router.get("", response_model=list[ProductRead])
async def list_products(
    auth: Auth,
    session: Session,
    status_filter: Annotated[ProductStatus | None, Query(alias="status")] = None,
) -> list[ProductRead]:
    stmt = select(Product).where(Product.tenant_id == auth.tenant_id)
    if status_filter is not None:
        stmt = stmt.where(Product.status == status_filter)
    stmt = stmt.order_by(Product.created_at.asc())  # type: ignore[union-attr]
    result = await session.execute(stmt)
    plan_id = await _current_plan_id(session, auth.tenant_id)
    return [_to_read(p, plan_id) for p in result.scalars().all()]


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(product_id: uuid.UUID, auth: Auth, session: Session) -> ProductRead:
    product = await _get_or_404(product_id, auth.tenant_id, session)
    return _to_read(product, await _current_plan_id(session, auth.tenant_id))


@router.patch("/{product_id}", response_model=ProductRead)
async def update_product(
    product_id: uuid.UUID,
    body: ProductUpdate,
    auth: Auth,
    session: Session,
) -> ProductRead:
    product = await _get_or_404(product_id, auth.tenant_id, session)
    plan_id = await _current_plan_id(session, auth.tenant_id)

    changes = body.model_dump(exclude_unset=True)
    new_status = changes.pop("status", None)
    if new_status == ProductStatus.ACTIVE and product.status != ProductStatus.ACTIVE:
        await _ensure_capacity(session, auth.tenant_id, plan_id)
        product.status = ProductStatus.ACTIVE
        product.archived_at = None
    elif new_status == ProductStatus.ARCHIVED and product.status != ProductStatus.ARCHIVED:
        product.status = ProductStatus.ARCHIVED
        product.archived_at = utcnow()

    for key, value in changes.items():
        setattr(product, key, value)
    product.touch()

    session.add(product)
    await session.commit()
    await session.refresh(product)
    return _to_read(product, plan_id)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(product_id: uuid.UUID, auth: Auth, session: Session) -> None:
    product = await _get_or_404(product_id, auth.tenant_id, session)
    await session.delete(product)
    await session.commit()
