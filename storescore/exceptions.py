"""Custom exceptions for the StoreScore API.

Every exception carries the HTTP status code it maps to, so the global
handler in ``storescore.main`` can render it as an ``ErrorResponse``.
"""

from typing import Any, Dict, Optional


class StoreScoreException(Exception):
    """Base exception for StoreScore errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code for API responses
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class ValidationError(StoreScoreException):
    """Raised when a request is well-formed but semantically invalid."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=400, details=details)


class AuthenticationError(StoreScoreException):
    """Raised when a request needs a logged-in user."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message=message, status_code=401)


class PermissionDeniedError(StoreScoreException):
    """Raised when the user is logged in but not allowed to act."""

    def __init__(self, message: str = "Admin access required"):
        super().__init__(message=message, status_code=403)


class NotFoundError(StoreScoreException):
    """Raised when a resource does not exist or is not visible to the caller."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        details = {"resource": resource}
        if resource_id is not None:
            details["id"] = resource_id
        super().__init__(message=message, status_code=404, details=details)


class InsufficientCreditsError(StoreScoreException):
    """Raised when a user does not have enough AI credits."""

    def __init__(self, required: int, available: int):
        super().__init__(
            message="Insufficient credits",
            status_code=402,
            details={"creditsRequired": required, "creditsAvailable": available},
        )
        self.required = required
        self.available = available


class SubscriptionRequiredError(StoreScoreException):
    """Raised when a feature needs an active subscription or trial."""

    def __init__(self, subscription_status: str = "none", reason: Optional[str] = None):
        super().__init__(
            message="Subscription required",
            status_code=402,
            details={
                "subscriptionStatus": subscription_status,
                "reason": reason or "Subscription required",
                "requiresTrial": True,
            },
        )


class StoreFetchError(StoreScoreException):
    """Raised when a storefront cannot be downloaded."""

    def __init__(self, url: str, reason: str):
        super().__init__(
            message=f"Failed to fetch store {url}: {reason}",
            status_code=502,
            details={"url": url, "reason": reason},
        )


class AIServiceError(StoreScoreException):
    """Raised when the language-model API call fails."""

    def __init__(self, message: str, status_code: int = 502, error: Optional[Exception] = None):
        details = {}
        if error is not None:
            details = {"error": str(error), "error_type": type(error).__name__}
        super().__init__(message=message, status_code=status_code, details=details)


class PaymentServiceError(StoreScoreException):
    """Raised when Stripe is not configured or a Stripe call fails."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message=message, status_code=status_code)


class ShopifyAPIError(StoreScoreException):
    """Raised when a Shopify Admin API call fails."""

    def __init__(self, message: str, status_code: int = 502, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=status_code, details=details)
