"""Domain error taxonomy.

Every error carries an HTTP status and a stable machine-readable code so the
client can route "not logged in" to login and "subscription lapsed" to billing.
"""

from __future__ import annotations


class TutorUGError(Exception):
    """Base class for all domain errors."""

    status_code: int = 400
    code: str = "error"
    retryable: bool = False

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)


class InvalidInput(TutorUGError):
    """Invalid input."""

    status_code = 400
    code = "invalid_input"


class InvalidAmount(InvalidInput):
    """Points amount must be a positive integer."""

    code = "invalid_amount"


class InvalidPlan(InvalidInput):
    """Invalid payment plan."""

    code = "invalid_plan"


class AlreadyRegistered(InvalidInput):
    """Phone number is already registered."""

    status_code = 409
    code = "already_registered"


class Unauthenticated(TutorUGError):
    """Authentication required."""

    status_code = 401
    code = "unauthenticated"


class InvalidSignature(TutorUGError):
    """Invalid webhook signature."""

    status_code = 401
    code = "invalid_signature"


class SubscriptionRequired(TutorUGError):
    """Active subscription required."""

    status_code = 403
    code = "subscription_required"


class Forbidden(TutorUGError):
    """Access to this resource is not allowed."""

    status_code = 403
    code = "forbidden"


class NotFound(TutorUGError):
    """Resource not found."""

    status_code = 404
    code = "not_found"


class ConcurrencyConflict(TutorUGError):
    """Concurrent update detected, please retry."""

    status_code = 409
    code = "concurrency_conflict"
    retryable = True


class ExternalServiceFailure(TutorUGError):
    """An external service is unavailable, please retry."""

    status_code = 503
    code = "external_service_failure"
    retryable = True

    def __init__(self, service: str, detail: str | None = None) -> None:
        self.service = service
        super().__init__(detail or f"{service} is unavailable")
