"""Account models — tenant users and the bearer tokens they authenticate with."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from plansync.models.base import TimestampMixin, new_uuid


class UserRole(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class User(TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)
    email: str = Field(max_length=320, nullable=False, unique=True, index=True)
    password_hash: str = Field(nullable=False)
    display_name: str = Field(default="", max_length=255)
    role: UserRole = Field(default=UserRole.MEMBER)
    is_active: bool = Field(default=True)


class ApiToken(TimestampMixin, SQLModel, table=True):
    __tablename__ = "api_tokens"

    id: uuid.UUID = Field(default_factory=new_uuid, primary_key=True)
    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    name: str = Field(max_length=255, nullable=False)

    # SHA-256 of the raw token; the raw value is returned once at creation
    token_hash: str = Field(nullable=False, unique=True, index=True)
    token_prefix: str = Field(max_length=12, nullable=False)

    is_active: bool = Field(default=True)
    expires_at: datetime | None = Field(default=None)
    last_used_at: datetime | None = Field(default=None)


# ── Pydantic schemas ─────────────────────────────────────────

class UserRead(SQLModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    email: str
    display_name: str
    role: UserRole
    is_active: bool


class ApiTokenCreate(SQLModel):
    name: str = Field(max_length=255)


class ApiTokenRead(SQLModel):
    """Never includes the raw token."""
    id: uuid.UUID
    tenant_id: uuid.UUID
    name: str
    token_prefix: str
    is_active: bool
    expires_at: datetime | None
    last_used_at: datetime | None
    created_at: datetime


class ApiTokenCreated(ApiTokenRead):
    raw_token: str
