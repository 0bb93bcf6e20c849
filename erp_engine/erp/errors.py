"""Typed failures raised by the Odoo transport.

Every exception carries a stable ``code`` that the skill boundary copies into
the failure result, so callers never have to inspect messages.
"""

from enum import StrEnum


class ErrorCode(StrEnum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_ERROR = "AUTH_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    API_ERROR = "API_ERROR"
    READ_ONLY_VIOLATION = "READ_ONLY_VIOLATION"
    UNKNOWN_SKILL = "UNKNOWN_SKILL"


class ErpError(Exception):
    """Base class for every failure coming out of the ERP client."""

    code: ErrorCode = ErrorCode.API_ERROR
    retryable: bool = False

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ErpAuthError(ErpError):
    """Missing credentials, rejected login, or access denied by the server."""

    code = ErrorCode.AUTH_ERROR


class ErpConnectionError(ErpError):
    """The endpoint could not be reached after every retry attempt."""

    code = ErrorCode.CONNECTION_ERROR
    retryable = True


class ErpApiError(ErpError):
    """HTTP failure status, JSON-RPC error body, or an unexpected response shape."""

    code = ErrorCode.API_ERROR

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: dict[str, object] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("status_code", status_code)
        self.retryable = status_code is not None and status_code >= 500


class ReadOnlyViolation(ErpError):
    """A mutating method was requested. Raised before any network I/O."""

    code = ErrorCode.READ_ONLY_VIOLATION

    def __init__(self, model: str, method: str) -> None:
        super().__init__(
            f"Method '{method}' on '{model}' is not allowed: the ERP connection is read-only",
            details={"model": model, "method": method},
        )
        self.model = model
        self.method = method
