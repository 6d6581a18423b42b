"""
Custom exception classes.

Every error the API returns is an APIException (or a plain HTTPException) with
a user-facing French message in ``detail`` and a stable ``error_code``.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: Any,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        # Additional top-level fields for the JSON error body
        self.extra = extra or {}


class NotFoundError(APIException):
    def __init__(self, detail: str = "Ressource introuvable"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Input rejected before any side effect (HTTP 400)."""

    def __init__(self, detail: str, field: Optional[str] = None, extra: Optional[Dict[str, Any]] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code=error_code,
            extra=extra
        )


class UnauthorizedError(APIException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenError(APIException):
    def __init__(self, detail: str = "Forbidden", error_code: str = "FORBIDDEN"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code=error_code
        )


class SubscriptionRequiredError(ForbiddenError):
    """Raised once a free first use has been consumed without a subscription."""

    def __init__(self, detail: str = "Abonnement requis pour continuer"):
        super().__init__(detail=detail, error_code="SUBSCRIPTION_REQUIRED")


class ConflictError(APIException):
    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )


class RateLimitedError(APIException):
    def __init__(self, detail: str = "Trop de requêtes, réessaye dans quelques instants."):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            error_code="RATE_LIMITED"
        )


class PaymentRequiredError(APIException):
    def __init__(self, detail: str = "Crédits épuisés, contacte le support."):
        super().__init__(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail=detail,
            error_code="CREDITS_EXHAUSTED"
        )


class UpstreamServiceError(APIException):
    """A third-party call failed; details are logged, the client gets a generic message."""

    def __init__(self, detail: str = "Erreur du service IA", error_code: str = "UPSTREAM_ERROR"):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            error_code=error_code
        )
