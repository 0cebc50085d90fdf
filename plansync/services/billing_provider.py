"""Stripe adapter — the only module that talks to the billing provider.

Every outbound call runs under a bounded timeout and failures are mapped to
``ProviderError`` so callers never see raw SDK exceptions.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

import stripe

from plansync.core.config import get_settings
from plansync.core.errors import (
    ConfigurationError,
    NotFoundError,
    ProviderError,
    SignatureError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ── Normalised provider objects ──────────────────────────────

@dataclass(frozen=True)
class CheckoutSessionInfo:
    id: str
    url: str | None
    payment_status: str | None
    customer_id: str | None
    subscription_id: str | None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


@dataclass(frozen=True)
class SubscriptionInfo:
    id: str
    customer_id: str | None
    status: str | None
    price_id: str | None
    interval: str | None
    current_period_end: int | None
    schedule_id: str | None


def _field(obj: Any, key: str) -> Any:
    """Read a key from a Stripe object or plain dict, None when absent."""
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError, AttributeError):
        return None


def _object_id(value: Any) -> str | None:
    """Stripe fields may hold either an id or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return _field(value, "id")


def session_from_payload(obj: Any) -> CheckoutSessionInfo:
    metadata = _field(obj, "metadata") or {}
    return CheckoutSessionInfo(
        id=_field(obj, "id") or "",
        url=_field(obj, "url"),
        payment_status=_field(obj, "payment_status"),
        customer_id=_object_id(_field(obj, "customer")),
        subscription_id=_object_id(_field(obj, "subscription")),
        metadata={str(k): str(v) for k, v in metadata.items()},
    )


def subscription_from_payload(obj: Any) -> SubscriptionInfo:
    items = _field(_field(obj, "items"), "data") or []
    first_item = items[0] if items else None
    price = _field(first_item, "price")
    recurring = _field(price, "recurring")
    # Newer API versions moved the period boundaries onto the item
    period_end = _field(obj, "current_period_end") or _field(first_item, "current_period_end")
    return SubscriptionInfo(
        id=_field(obj, "id") or "",
        customer_id=_object_id(_field(obj, "customer")),
        status=_field(obj, "status"),
        price_id=_object_id(price),
        interval=_field(recurring, "interval"),
        current_period_end=period_end,
        schedule_id=_object_id(_field(obj, "schedule")),
    )


# ── Call plumbing ────────────────────────────────────────────

def _api_key() -> str:
    key = get_settings().stripe_secret_key
    if not key:
        raise ConfigurationError("STRIPE_SECRET_KEY is not configured")
    return key


async def _call(operation: str, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
    timeout = get_settings().stripe_timeout_seconds
    try:
        return await asyncio.wait_for(fn(*args, api_key=_api_key(), **kwargs), timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("Stripe %s timed out after %.1fs", operation, timeout)
        raise ProviderError(
            f"Billing provider timed out during {operation}", retryable=True,
        ) from exc
    except stripe.InvalidRequestError as exc:
        if exc.code == "resource_missing":
            raise NotFoundError(f"Billing provider has no such object ({operation})") from exc
        raise ProviderError(exc.user_message or str(exc)) from exc
    except stripe.StripeError as exc:
        logger.warning("Stripe %s failed: %s", operation, exc)
        raise ProviderError(exc.user_message or str(exc)) from exc


# ── Operations ───────────────────────────────────────────────

async def create_customer(tenant_id: str, email: str | None) -> str:
    """Create a customer; the idempotency key makes retries return the same one."""
    customer = await _call(
        "customer creation",
        stripe.Customer.create_async,
        email=email,
        metadata={"tenant_id": tenant_id},
        idempotency_key=f"tenant-customer-{tenant_id}",
    )
    return customer["id"]


async def create_checkout_session(
    *,
    customer_id: str,
    price_id: str,
    metadata: dict[str, str],
    client_reference_id: str,
) -> CheckoutSessionInfo:
    app_url = get_settings().app_url.rstrip("/")
    session = await _call(
        "checkout session creation",
        stripe.checkout.Session.create_async,
        customer=customer_id,
        mode="subscription",
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=f"{app_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{app_url}/?canceled=true",
        allow_promotion_codes=True,
        client_reference_id=client_reference_id,
        metadata=metadata,
        subscription_data={"metadata": metadata},
    )
    return session_from_payload(session)


async def retrieve_checkout_session(session_id: str) -> CheckoutSessionInfo:
    session = await _call(
        "checkout session lookup", stripe.checkout.Session.retrieve_async, session_id,
    )
    return session_from_payload(session)


async def retrieve_subscription(subscription_id: str) -> SubscriptionInfo:
    subscription = await _call(
        "subscription lookup", stripe.Subscription.retrieve_async, subscription_id,
    )
    return subscription_from_payload(subscription)


async def cancel_at_period_end(subscription_id: str) -> None:
    await _call(
        "subscription cancellation",
        stripe.Subscription.modify_async,
        subscription_id,
        cancel_at_period_end=True,
    )


async def schedule_price_change(subscription: SubscriptionInfo, new_price_id: str) -> str:
    """Keep the current price until period end, then switch with no proration."""
    schedule_id = subscription.schedule_id
    if schedule_id is None:
        schedule = await _call(
            "subscription schedule creation",
            stripe.SubscriptionSchedule.create_async,
            from_subscription=subscription.id,
        )
        schedule_id = schedule["id"]

    await _call(
        "subscription schedule update",
        stripe.SubscriptionSchedule.modify_async,
        schedule_id,
        end_behavior="release",
        phases=[
            {
                "start_date": "now",
                "end_date": subscription.current_period_end,
                "items": [{"price": subscription.price_id, "quantity": 1}],
            },
            {
                "start_date": subscription.current_period_end,
                "items": [{"price": new_price_id, "quantity": 1}],
                "proration_behavior": "none",
            },
        ],
    )
    return schedule_id


# ── Webhook authenticity ─────────────────────────────────────

def verify_webhook(payload: bytes, signature: str | None) -> dict:
    """Verify the Stripe-Signature header against the raw body, then parse it.

    Raises SignatureError before anything is parsed if the check fails.
    """
    settings = get_settings()
    if not settings.stripe_webhook_secret:
        raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
    if not signature:
        raise SignatureError("Missing stripe-signature header")

    try:
        body = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            body,
            signature,
            settings.stripe_webhook_secret,
            settings.stripe_webhook_tolerance_seconds,
        )
    except UnicodeDecodeError as exc:
        raise SignatureError("Invalid payload encoding") from exc
    except stripe.SignatureVerificationError as exc:
        logger.warning("Webhook signature verification failed: %s", exc)
        raise SignatureError("Invalid signature") from exc

    try:
        event = json.loads(body)
    except ValueError as exc:
        raise SignatureError("Invalid payload") from exc
    if not isinstance(event, dict) or "type" not in event:
        raise SignatureError("Invalid payload")
    return event


def format_timestamp(value: int | None) -> str | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
