"""
Lampo Custom Exceptions

Simple exception hierarchy for error handling.
Read failures are absorbed by the fallback layer; write failures propagate.
"""


class LampoError(Exception):
    """Base exception for Lampo."""

    pass


class ConfigurationError(LampoError):
    """Configuration is invalid."""

    pass


class BackendError(LampoError):
    """Request to the optimization backend failed."""

    def __init__(self, message: str, status_code: int | None = None, detail: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class BackendConnectionError(BackendError):
    """Cannot connect to the optimization backend."""

    pass


class BackendTimeoutError(BackendError):
    """Backend did not answer in time."""

    pass


class BackendResponseError(BackendError):
    """Backend answered with a non-success status."""

    pass


class NotFoundError(BackendResponseError):
    """Requested resource does not exist on the backend."""

    pass


class MalformedResponseError(BackendError):
    """Backend response body could not be parsed."""

    pass


class ValidationError(LampoError):
    """Input failed validation.

    Carries one message per offending field so forms can show them inline.
    """

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        summary = "; ".join(f"{field}: {msg}" for field, msg in self.errors.items())
        super().__init__(f"Validation failed - {summary}")


class WriteOperationError(LampoError):
    """A write operation (registration, demand response) was rejected."""

    def __init__(self, operation: str, cause: BackendError):
        self.operation = operation
        self.cause = cause
        self.status_code = cause.status_code
        super().__init__(f"{operation} failed: {cause}")
