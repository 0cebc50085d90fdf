"""Product model — the tenant-owned resource subject to plan quotas."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from plansync.models.base import TimestampMixin, new_uuid


class ProductStatus(StrEnum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class Product(TimestampMixin, SQLModel, table=True):
    __tablename__ = "products"
    __table_args__ = (
        Index("ix_products_tenant_status_created", "tenant_id", "status", "created_at"),
    )

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)

    title: str = Field(max_length=255, nullable=False)
    description: str = Field(default="", max_length=2000)
    price_cents: int = Field(default=0, ge=0)
    currency: str = Field(default="BRL", max_length=3)

    status: ProductStatus = Field(default=ProductStatus.ACTIVE)
    archived_at: datetime | None = Field(default=None)


# ── Pydantic schemas ─────────────────────────────────────────

class ProductCreate(SQLModel):
    title: str = Field(max_length=255)
    description: str = Field(default="", max_length=2000)
    price_cents: int = Field(default=0, ge=0)
    currency: str = Field(default="BRL", min_length=3, max_length=3)


class ProductUpdate(SQLModel):
    title: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    price_cents: int | None = Field(default=None, ge=0)
    status: ProductStatus | None = None


class ProductRead(SQLModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    title: str
    description: str
    price_cents: int
    currency: str
    status: ProductStatus
    platform_fee_cents: int = 0
    archived_at: datetime | None
    created_at: datetime
    updated_at: datetime
