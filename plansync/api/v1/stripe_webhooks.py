"""Inbound Stripe webhook endpoint."""

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from plansync.api.deps import Session
from plansync.core.errors import ConfigurationError, SignatureError
from plansync.services.billing_provider import verify_webhook
from plansync.services.reconciler import reconcile_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe", summary="Receive Stripe billing events")
async def stripe_webhook(request: Request, session: Session) -> JSONResponse:
    """Verify, then reconcile. 400 tells Stripe to stop, 500 makes it retry."""
    payload = await request.body()
    try:
        event = verify_webhook(payload, request.headers.get("stripe-signature"))
    except SignatureError as exc:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": exc.message})
    except ConfigurationError as exc:
        logger.error("Stripe webhook rejected: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Webhook configuration error"},
        )

    try:
        await reconcile_event(session, event)
    except Exception:
        await session.rollback()
        logger.exception("Error processing webhook %s (%s)", event.get("id"), event.get("type"))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Webhook processing failed"},
        )

    return JSONResponse(content={"received": True})
