"""Webhook reconciliation — turn verified Stripe events into billing profile state.

Each handler recomputes absolute state from the event payload, so replays
and out-of-order deliveries converge on the same profile. Events are parsed
into a closed set of variants; anything else lands in ``Unrecognized``.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from plansync.core.plans import PlanId, get_catalog
from plansync.models.billing_profile import BillingProfile, SubscriptionStatus
from plansync.services.billing_provider import (
    CheckoutSessionInfo,
    SubscriptionInfo,
    session_from_payload,
    subscription_from_payload,
)
from plansync.services.profiles import (
    apply_checkout_binding,
    binding_from_session,
    get_profile_by_customer,
)
from plansync.services.quota import enforce_quota

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    TRIAL_WILL_END = "customer.subscription.trial_will_end"


# Stripe subscription statuses → internal status; unlisted ones leave it as is
_STATUS_MAP: dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
}


# ── Event variants ───────────────────────────────────────────

@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: str
    checkout: CheckoutSessionInfo


@dataclass(frozen=True)
class SubscriptionChanged:
    event_id: str
    subscription: SubscriptionInfo


@dataclass(frozen=True)
class SubscriptionDeleted:
    event_id: str
    customer_id: str | None
    subscription_id: str


@dataclass(frozen=True)
class InvoicePaid:
    event_id: str
    customer_id: str | None


@dataclass(frozen=True)
class InvoicePaymentFailed:
    event_id: str
    customer_id: str | None


@dataclass(frozen=True)
class TrialEnding:
    event_id: str
    customer_id: str | None
    trial_end: int | None


@dataclass(frozen=True)
class Unrecognized:
    event_id: str
    event_type: str


BillingEvent = Union[
    CheckoutCompleted,
    SubscriptionChanged,
    SubscriptionDeleted,
    InvoicePaid,
    InvoicePaymentFailed,
    TrialEnding,
    Unrecognized,
]


def _customer_of(obj: dict) -> str | None:
    customer = obj.get("customer")
    if isinstance(customer, dict):
        return customer.get("id")
    return customer


def parse_event(event: dict[str, Any]) -> BillingEvent:
    """Map a verified Stripe event onto one of the known variants."""
    event_id = str(event.get("id", ""))
    event_type = str(event.get("type", ""))
    obj = (event.get("data") or {}).get("object") or {}

    if event_type == EventType.CHECKOUT_COMPLETED:
        return CheckoutCompleted(event_id, session_from_payload(obj))
    if event_type in (EventType.SUBSCRIPTION_CREATED, EventType.SUBSCRIPTION_UPDATED):
        return SubscriptionChanged(event_id, subscription_from_payload(obj))
    if event_type == EventType.SUBSCRIPTION_DELETED:
        return SubscriptionDeleted(event_id, _customer_of(obj), str(obj.get("id", "")))
    if event_type == EventType.INVOICE_PAID:
        return InvoicePaid(event_id, _customer_of(obj))
    if event_type == EventType.INVOICE_PAYMENT_FAILED:
        return InvoicePaymentFailed(event_id, _customer_of(obj))
    if event_type == EventType.TRIAL_WILL_END:
        return TrialEnding(event_id, _customer_of(obj), obj.get("trial_end"))
    return Unrecognized(event_id, event_type)


# ── Helpers ──────────────────────────────────────────────────

async def _profile_for(
    session: AsyncSession, customer_id: str | None, event_id: str,
) -> BillingProfile | None:
    profile = await get_profile_by_customer(session, customer_id)
    if profile is None:
        logger.info("Event %s: no billing profile for customer %s; skipping", event_id, customer_id)
    return profile


async def _save(session: AsyncSession, profile: BillingProfile) -> None:
    profile.touch()
    session.add(profile)
    await session.commit()


async def _enforce_safely(session: AsyncSession, tenant_id: uuid.UUID, plan_id: str) -> None:
    """Run enforcement without letting a database failure undo the transition."""
    try:
        await enforce_quota(session, tenant_id, plan_id)
    except SQLAlchemyError:
        await session.rollback()
        logger.exception(
            "Quota enforcement failed for tenant %s on plan %s; will retry on next event",
            tenant_id, plan_id,
        )


def notify_trial_ending(tenant_id: uuid.UUID, trial_end: int | None) -> None:
    """Hook for trial reminders; delivery is handled outside the billing core."""
    logger.info("Trial ending for tenant %s at %s", tenant_id, trial_end)


# ── Handlers ─────────────────────────────────────────────────

async def _on_checkout_completed(session: AsyncSession, event: CheckoutCompleted) -> None:
    binding = binding_from_session(event.checkout)
    if binding is None:
        return
    await apply_checkout_binding(session, binding)


async def _on_subscription_changed(session: AsyncSession, event: SubscriptionChanged) -> None:
    sub = event.subscription
    profile = await _profile_for(session, sub.customer_id, event.event_id)
    if profile is None:
        return

    catalog = get_catalog()
    plan = catalog.plan_for_price(sub.price_id)
    if plan is None:
        plan = catalog.lowest_paid()
        logger.warning(
            "Event %s: price %r matches no plan; defaulting tenant %s to %s",
            event.event_id, sub.price_id, profile.tenant_id, plan.plan_id,
        )

    profile.plan_id = plan.plan_id
    profile.external_subscription_id = sub.id
    mapped = _STATUS_MAP.get(sub.status or "")
    if mapped is not None:
        profile.subscription_status = mapped
    await _save(session, profile)
    logger.info(
        "Subscription %s for tenant %s now on %s (%s)",
        sub.id, profile.tenant_id, plan.plan_id, sub.status,
    )

    await _enforce_safely(session, profile.tenant_id, plan.plan_id)


async def _on_subscription_deleted(session: AsyncSession, event: SubscriptionDeleted) -> None:
    profile = await _profile_for(session, event.customer_id, event.event_id)
    if profile is None:
        return

    profile.plan_id = PlanId.FREE
    profile.subscription_status = SubscriptionStatus.CANCELED
    profile.external_subscription_id = None
    profile.cancel_at_period_end = False
    await _save(session, profile)
    logger.info("Subscription %s canceled; tenant %s downgraded to free", event.subscription_id, profile.tenant_id)

    await _enforce_safely(session, profile.tenant_id, PlanId.FREE)


async def _on_invoice_paid(session: AsyncSession, event: InvoicePaid) -> None:
    profile = await _profile_for(session, event.customer_id, event.event_id)
    if profile is None:
        return
    profile.subscription_status = SubscriptionStatus.ACTIVE
    await _save(session, profile)


async def _on_invoice_payment_failed(session: AsyncSession, event: InvoicePaymentFailed) -> None:
    profile = await _profile_for(session, event.customer_id, event.event_id)
    if profile is None:
        return
    # Grace period: quotas stay untouched until the subscription is deleted
    profile.subscription_status = SubscriptionStatus.PAST_DUE
    await _save(session, profile)
    logger.warning("Payment failed for tenant %s", profile.tenant_id)


async def _on_trial_ending(session: AsyncSession, event: TrialEnding) -> None:
    profile = await _profile_for(session, event.customer_id, event.event_id)
    if profile is None:
        return
    notify_trial_ending(profile.tenant_id, event.trial_end)


async def _on_unrecognized(session: AsyncSession, event: Unrecognized) -> None:
    logger.info("Unhandled event type %s (%s)", event.event_type, event.event_id)


_HANDLERS: dict[type, Callable[[AsyncSession, Any], Awaitable[None]]] = {
    CheckoutCompleted: _on_checkout_completed,
    SubscriptionChanged: _on_subscription_changed,
    SubscriptionDeleted: _on_subscription_deleted,
    InvoicePaid: _on_invoice_paid,
    InvoicePaymentFailed: _on_invoice_payment_failed,
    TrialEnding: _on_trial_ending,
    Unrecognized: _on_unrecognized,
}


async def reconcile_event(session: AsyncSession, event: dict[str, Any]) -> BillingEvent:
    """Apply a verified Stripe event to the billing state."""
    parsed = parse_event(event)
    logger.info("Reconciling %s (%s)", event.get("type"), parsed.event_id)
    await _HANDLERS[type(parsed)](session, parsed)
    return parsed
