"""Error taxonomy shared by the REST client, auth client and feed."""

from typing import Any, Optional


class ApiError(Exception):
    """Failure talking to a remote service, carrying an HTTP-style status and message."""

    def __init__(self, status: int, message: str, code: Optional[str] = None, details: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.code = code
        self.details = details

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(status={self.status!r}, message={self.message!r}, code={self.code!r})"


class TransportError(ApiError):
    """Network unreachable or connection dropped; no response was received."""

    def __init__(self, message: str = "Network error", details: Any = None) -> None:
        super().__init__(0, message, code="transport_error", details=details)


class RequestTimeout(TransportError):
    """The fixed request timeout elapsed before a response arrived."""

    def __init__(self, message: str = "Request timeout", details: Any = None) -> None:
        super().__init__(message, details=details)
        self.code = "timeout"


class ServiceError(ApiError):
    """The remote service answered with a non-2xx status."""


class AuthRequiredError(ApiError):
    """A write was attempted without a signed-in session."""

    def __init__(self, message: str = "Sign in required") -> None:
        super().__init__(401, message, code="auth_required")


class ReportValidationError(ValueError):
    """Malformed user input caught before anything is dispatched."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = errors
        summary = "; ".join(f"{field}: {msg}" for field, msg in errors.items())
        super().__init__(summary or "Invalid input")
