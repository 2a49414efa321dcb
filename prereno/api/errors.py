"""
Domain error -> HTTP mapping shared by the route modules.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from prereno.integrations.stripe import PaymentError
from prereno.services.auth_service import InvalidOfferTokenError
from prereno.services.jobService import PermissionDeniedError
from prereno.services.jobStateManager import InvalidTransitionError
from prereno.services.offerDispatcher import (
    AlreadyClaimedError,
    JobNotFoundError,
    OfferClosedError,
    OfferExpiredError,
    OfferNotFoundError,
    OutOfRangeError,
)
from prereno.services.pricingEngine import NotConfiguredError
from prereno.services.settlementService import PaymentNotFoundError

# Every exception type ``to_http`` understands; routes catch this tuple.
DOMAIN_ERRORS = (
    PaymentError,
    InvalidOfferTokenError,
    PermissionDeniedError,
    InvalidTransitionError,
    AlreadyClaimedError,
    JobNotFoundError,
    OfferClosedError,
    OfferExpiredError,
    OfferNotFoundError,
    OutOfRangeError,
    NotConfiguredError,
    PaymentNotFoundError,
)


def payment_error_to_http(exc: PaymentError) -> HTTPException:
    detail = {
        "message": exc.message,
        "stripe_error_code": exc.stripe_error_code,
        "stripe_error_type": exc.stripe_error_type,
    }
    if exc.decline_code:
        detail["decline_code"] = exc.decline_code
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


def to_http(exc: Exception) -> HTTPException:
    """Translate a domain exception into the matching ``HTTPException``."""
    if isinstance(exc, PaymentError):
        return payment_error_to_http(exc)
    if isinstance(exc, (JobNotFoundError, OfferNotFoundError, PaymentNotFoundError)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidOfferTokenError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    if isinstance(exc, AlreadyClaimedError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, OfferExpiredError):
        return HTTPException(status_code=status.HTTP_410_GONE, detail=str(exc))
    if isinstance(exc, OutOfRangeError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": str(exc),
                "min_cents": exc.min_cents,
                "max_cents": exc.max_cents,
                "requested_cents": exc.requested_cents,
            },
        )
    if isinstance(exc, (InvalidTransitionError, OfferClosedError)):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
        )
    if isinstance(exc, NotConfiguredError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
