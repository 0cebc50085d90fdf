"""Tenant billing profile — the internally owned subscription state."""

import uuid
from datetime import datetime
from enum import StrEnum

from sqlmodel import Field, SQLModel

from plansync.core.plans import BillingCycle, PlanId
from plansync.models.base import TimestampMixin


class SubscriptionStatus(StrEnum):
    NONE = "none"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class BillingProfile(TimestampMixin, SQLModel, table=True):
    __tablename__ = "billing_profiles"

    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", primary_key=True)

    # Set once on first checkout, never rewritten afterwards
    external_customer_id: str | None = Field(
        default=None, max_length=255, unique=True, index=True,
    )
    # Present only while a subscription exists upstream
    external_subscription_id: str | None = Field(default=None, max_length=255, index=True)

    plan_id: PlanId = Field(default=PlanId.FREE)
    subscription_status: SubscriptionStatus = Field(default=SubscriptionStatus.NONE)
    billing_cycle: BillingCycle | None = Field(default=None)
    cancel_at_period_end: bool = Field(default=False)


# ── Pydantic schemas ─────────────────────────────────────────

class BillingProfileRead(SQLModel):
    tenant_id: uuid.UUID
    external_customer_id: str | None
    external_subscription_id: str | None
    plan_id: PlanId
    subscription_status: SubscriptionStatus
    billing_cycle: BillingCycle | None
    cancel_at_period_end: bool
    updated_at: datetime | None = None
