"""Tenant model — top-level isolation boundary."""

import uuid

from sqlmodel import Field, SQLModel

from plansync.models.base import TimestampMixin, new_uuid


class Tenant(TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenants"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    name: str = Field(max_length=255, nullable=False)
    slug: str = Field(max_length=100, unique=True, nullable=False, index=True)
    is_active: bool = Field(default=True)


# ── Pydantic schemas (read / create) ─────────────────────────

class TenantRead(SQLModel):
    id: uuid.UUID
    name: str
    slug: str
    is_active: bool
