"""Application error taxonomy.

Services raise subclasses of ``AppError``; a single exception handler in
``src.main`` turns them into the JSON error envelope. Each class fixes the
HTTP status, each instance carries a stable machine-readable ``code``.
"""

from fastapi import status


class AppError(Exception):
    """Base for all expected, client-facing errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, code: str = "error"):
        self.message = message
        self.code = code
        super().__init__(message)

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(code={self.code!r}, message={self.message!r})>"


class ValidationError(AppError):
    """Input is missing or out of range."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str = "Invalid input", code: str = "validation_error"):
        super().__init__(message, code)


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(
        self, message: str = "Not authenticated", code: str = "not_authenticated"
    ):
        super().__init__(message, code)


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Not authorized", code: str = "forbidden"):
        super().__init__(message, code)


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Not found", code: str = "not_found"):
        super().__init__(message, code)


class BusinessRuleError(AppError):
    """Request is well-formed but violates a domain rule."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, code: str = "business_rule"):
        super().__init__(message, code)


class IntegrityError(AppError):
    """A storage-level invariant could not be upheld (e.g. write conflicts)."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Write conflict", code: str = "integrity_error"):
        super().__init__(message, code)


__all__ = [
    "AppError",
    "AuthenticationError",
    "AuthorizationError",
    "BusinessRuleError",
    "IntegrityError",
    "NotFoundError",
    "ValidationError",
]
