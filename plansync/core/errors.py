"""Billing error taxonomy and the FastAPI handlers that render it.

Every error carries the HTTP status it maps to for direct callers. Webhook
processing answers some of them differently (see ``api.v1.stripe_webhooks``).
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BillingError(Exception):
    """Base class for errors raised by the billing core."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(BillingError):
    """Missing catalog entry, price id or provider credential."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class SignatureError(BillingError):
    """Inbound webhook failed authenticity checks."""

    status_code = status.HTTP_400_BAD_REQUEST


class ProviderError(BillingError):
    """The billing provider failed, timed out or rejected the request."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable
        if retryable:
            self.status_code = status.HTTP_504_GATEWAY_TIMEOUT


class NotFoundError(BillingError):
    status_code = status.HTTP_404_NOT_FOUND


class PlanNotAllowedError(BillingError):
    """Plan is unknown or does not go through checkout."""

    status_code = status.HTTP_400_BAD_REQUEST


class QuotaExceededError(BillingError):
    status_code = status.HTTP_403_FORBIDDEN


async def _billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    if isinstance(exc, ConfigurationError):
        logger.error("Configuration error on %s %s: %s", request.method, request.url.path, exc)
    elif isinstance(exc, ProviderError):
        logger.warning("Provider error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BillingError, _billing_error_handler)  # type: ignore[arg-type]
