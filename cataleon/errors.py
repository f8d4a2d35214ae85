"""
Exception hierarchy for Cataleon.

Core catalog functions raise these; Streamlit pages catch CataleonError around
each user action and show the message instead of crashing the page.
"""

from typing import Any


class CataleonError(Exception):
    """Base class for every error raised by the catalog core."""

    def __init__(self, message: str, code: str = "CATALEON_ERROR"):
        super().__init__(message)
        self.message = message
        self.code = code

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}


class AuthenticationError(CataleonError):
    """No signed-in session for an operation that needs an owner."""

    def __init__(self, message: str = "You must be signed in to do that."):
        super().__init__(message, code="AUTH_REQUIRED")


class ValidationError(CataleonError):
    def __init__(self, message: str):
        super().__init__(message, code="VALIDATION_ERROR")


class BatchError(CataleonError):
    """One or more per-product writes in a fan-out batch failed."""

    def __init__(self, result: Any):
        self.result = result
        super().__init__(
            f"{len(result.failed)} of {result.total} update(s) failed",
            code="BATCH_PARTIAL_FAILURE",
        )


class ShareLinkError(CataleonError):
    def __init__(self, message: str = "Invalid or expired share link"):
        super().__init__(message, code="SHARE_LINK_INVALID")


class RateLimitError(CataleonError):
    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__("Too many requests. Please try again later.", code="RATE_LIMITED")


class ExternalServiceError(CataleonError):
    def __init__(self, message: str):
        super().__init__(message, code="EXTERNAL_SERVICE_ERROR")
