class ServiceError(RuntimeError):
    """Base for errors a transition can report to its caller."""

    code = "Internal"
    status_code = 500

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)


class ValidationFailed(ServiceError):
    """Raised for malformed input (unknown enum, missing field) before any mutation."""

    code = "ValidationFailed"
    status_code = 400


class Unauthenticated(ServiceError):
    """Raised when the caller token is missing or cannot be verified."""

    code = "Unauthenticated"
    status_code = 401


class Unauthorized(ServiceError):
    """Raised when a checkout session or trigger does not belong to the caller."""

    code = "Unauthorized"
    status_code = 403


class Forbidden(ServiceError):
    """Raised when a tenant-scoped resource is outside the caller's tenant."""

    code = "Forbidden"
    status_code = 403


class NotFound(ServiceError):
    code = "NotFound"
    status_code = 404


class InvalidTransition(ServiceError):
    """Raised when the requested state change is not in the transition table."""

    code = "InvalidTransition"
    status_code = 400

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Invalid transition {current} -> {requested}")


class AlreadyScheduled(ServiceError):
    code = "AlreadyScheduled"
    status_code = 400


class PaymentIncomplete(ServiceError):
    code = "PaymentIncomplete"
    status_code = 400


class RateLimited(ServiceError):
    code = "RateLimited"
    status_code = 429


class GatewayUnavailable(ServiceError):
    """Raised when the payment gateway times out or fails (network errors, 5xx)."""

    code = "GatewayUnavailable"
    status_code = 502


class StorageError(ServiceError):
    """Raised when the document store rejects or fails a write."""

    code = "StorageError"
    status_code = 503
