"""
Error taxonomy for the waitlist service.

Every class carries the HTTP status it renders as; the app-wide handler in
app.main turns any BaseAppException into the public error envelope.
"""
from typing import Optional


class BaseAppException(Exception):
    """Base application exception"""
    status_code = 500

    def __init__(self, message: str, details: str = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class InvalidInputError(BaseAppException):
    """Malformed request the caller can fix"""
    status_code = 400


class UnauthorizedError(BaseAppException):
    """Unknown or invalid API key.

    The message is the same whether the key is malformed or simply unknown.
    """
    status_code = 401

    def __init__(self, message: str = "Invalid API key", details: str = None):
        super().__init__(message, details)


class WaitlistClosedError(BaseAppException):
    """Project is frozen and accepts no new joins"""
    status_code = 403

    def __init__(self, message: str = "Waitlist is currently closed", details: str = None):
        super().__init__(message, details)


class NotFoundError(BaseAppException):
    """Raised when a resource is not found"""
    status_code = 404


class RateLimitedError(BaseAppException):
    """Per-key request budget exhausted; nothing was written"""
    status_code = 429

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again later.",
        details: str = None,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message, details)
        self.retry_after = retry_after


class StorageUnavailableError(BaseAppException):
    """Database failure on the admission path. Detail stays server-side."""
    status_code = 500
    public_message = "Internal server error"
