"""Post-redirect checkout verification, racing the checkout webhook."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from plansync.core.errors import NotFoundError
from plansync.services import billing_provider
from plansync.services.profiles import apply_checkout_binding, binding_from_session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    paid: bool
    subscription_id: str | None = None
    customer_id: str | None = None


async def verify_checkout_session(
    session: AsyncSession, tenant_id: uuid.UUID, session_id: str,
) -> VerificationResult:
    """Re-derive the checkout binding from the provider's copy of the session.

    An unpaid session is a pending state, not an error, and writes nothing.
    """
    checkout = await billing_provider.retrieve_checkout_session(session_id)

    # Sessions without our tenant tag are not attributable to the caller
    if checkout.metadata.get("tenant_id") != str(tenant_id):
        raise NotFoundError("Checkout session not found")

    if not checkout.is_paid:
        return VerificationResult(paid=False)

    binding = binding_from_session(checkout)
    if binding is not None:
        await apply_checkout_binding(session, binding)
    else:
        logger.warning("Paid checkout %s lacks subscription or plan; not bound", checkout.id)

    return VerificationResult(
        paid=True,
        subscription_id=checkout.subscription_id,
        customer_id=checkout.customer_id,
    )
