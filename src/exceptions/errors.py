from typing import Any, Optional


class DomainError(Exception):
    """Base class for errors raised by the catalog, ledger, evaluator and registry."""

    status_code: int = 400
    error_code: str = "DOMAIN_ERROR"
    default_message: str = "Request could not be completed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(DomainError):
    status_code = 400
    error_code = "VALIDATION_ERROR"
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[list[dict[str, Any]]] = None):
        self.errors = errors or []
        super().__init__(message)


class NotFoundError(DomainError):
    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Resource not found"


class PlanNotFoundError(NotFoundError):
    default_message = "Subscription plan not found or inactive"


class NoActiveSubscriptionError(NotFoundError):
    default_message = "No active subscription found"


class ContentNotFoundError(NotFoundError):
    default_message = "Content not found"


class StreamSessionNotFoundError(NotFoundError):
    default_message = "Streaming session expired or not found. Please request a new stream."


class AuthenticationError(DomainError):
    status_code = 401
    error_code = "AUTH_ERROR"
    default_message = "Authentication required"


class AuthorizationError(DomainError):
    status_code = 403
    error_code = "AUTHORIZATION_ERROR"
    default_message = "Access denied"


class ConflictError(DomainError):
    status_code = 409
    error_code = "CONFLICT_ERROR"
    default_message = "Resource conflict"


class DuplicateActiveSubscriptionError(ConflictError):
    status_code = 400
    error_code = "DUPLICATE_ACTIVE_SUBSCRIPTION"
    default_message = "You already have an active subscription. Please cancel it first."


class PlanInUseError(ConflictError):
    status_code = 400
    error_code = "PLAN_IN_USE"

    def __init__(self, active_subscriptions: int):
        self.active_subscriptions = active_subscriptions
        super().__init__(
            f"Cannot delete plan with {active_subscriptions} active subscriptions. "
            "Please deactivate it instead."
        )


class EmailAlreadyRegisteredError(ConflictError):
    default_message = "Email already registered"


class CapacityError(DomainError):
    status_code = 403
    error_code = "CAPACITY_ERROR"
    default_message = "Capacity exceeded"


class ConcurrentLimitExceededError(CapacityError):
    error_code = "CONCURRENT_LIMIT_EXCEEDED"

    def __init__(self, max_concurrent: int):
        self.max_concurrent = max_concurrent
        super().__init__(
            f"Maximum concurrent streams reached ({max_concurrent}). "
            "Stop playback on another device to continue."
        )


class DependencyError(DomainError):
    status_code = 500
    error_code = "DEPENDENCY_ERROR"
    default_message = "A required service is unavailable"
