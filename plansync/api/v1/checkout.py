"""Checkout endpoints — open a subscription checkout and verify it after redirect."""

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from plansync.api.deps import Auth, Session, UserEmail
from plansync.core.plans import BillingCycle
from plansync.services.checkout import create_checkout
from plansync.services.session_verifier import verify_checkout_session

router = APIRouter(prefix="/checkout", tags=["checkout"])


# ── Schemas ──────────────────────────────────────────────────

class CheckoutRequest(BaseModel):
    plan_id: str = Field(min_length=1, max_length=50)
    billing_cycle: BillingCycle = BillingCycle.MONTHLY


class CheckoutResponse(BaseModel):
    session_id: str
    session_url: str


class VerifyRequest(BaseModel):
    session_id: str = Field(min_length=1, max_length=255)


class VerifyResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str | None = None
    subscription: str | None = None
    customer_id: str | None = Field(default=None, serialization_alias="customerId")


# ── Routes ───────────────────────────────────────────────────

@router.post("", response_model=CheckoutResponse)
async def start_checkout(
    body: CheckoutRequest,
    auth: Auth,
    email: UserEmail,
    session: Session,
) -> CheckoutResponse:
    """Create a checkout session for a paid plan and return its redirect URL."""
    result = await create_checkout(
        session,
        tenant_id=auth.tenant_id,
        email=email,
        plan_id=body.plan_id,
        billing_cycle=body.billing_cycle,
    )
    return CheckoutResponse(session_id=result.session_id, session_url=result.url)


@router.post("/verify", response_model=VerifyResponse)
async def verify_checkout(body: VerifyRequest, auth: Auth, session: Session) -> VerifyResponse:
    """Polled by the client after redirect; applies the binding if already paid."""
    result = await verify_checkout_session(session, auth.tenant_id, body.session_id)
    if not result.paid:
        return VerifyResponse(success=False, message="Payment not confirmed yet")
    return VerifyResponse(
        success=True,
        subscription=result.subscription_id,
        customer_id=result.customer_id,
    )
