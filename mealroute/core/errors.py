"""
Typed errors for journey operations.

Every error carries a stable machine-readable ``code``, an HTTP status and a
retry hint. The API layer renders them through a single exception handler
registered in ``main.py``.
"""

from typing import Any, Optional


class RetryHint:
    SAFE = "safe"
    CHECK_STATUS_FIRST = "check_status_first"
    NO = "no"


class JourneyError(Exception):
    """Base class for errors raised by the journey engine."""

    status_code: int = 400
    default_code: str = "JOURNEY_ERROR"
    retry: str = RetryHint.NO

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Any = None,
        status_code: Optional[int] = None,
        retry: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        if retry is not None:
            self.retry = retry

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            },
            "retry": self.retry,
        }


class ValidationError(JourneyError):
    status_code = 400
    default_code = "INVALID_REQUEST"


class NotFoundError(JourneyError):
    status_code = 404
    default_code = "NOT_FOUND"


class StateError(JourneyError):
    """The request is well-formed but conflicts with the recorded journey state."""

    status_code = 409
    default_code = "INVALID_STATE"


class UpstreamError(JourneyError):
    """
    The Route Optimization Engine failed or answered with something unusable.

    ``upstream_status`` keeps the engine's own HTTP status when there was one.
    Local state is never modified when this is raised, so retrying is safe.
    """

    status_code = 502
    default_code = "UPSTREAM_ERROR"
    retry = RetryHint.SAFE

    def __init__(
        self,
        message: str,
        upstream_status: Optional[int] = None,
        code: Optional[str] = None,
        details: Any = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, code=code, details=details, status_code=status_code)
        self.upstream_status = upstream_status

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["error"]["upstream_status"] = self.upstream_status
        return body


class StoreError(JourneyError):
    status_code = 500
    default_code = "STORE_ERROR"
    retry = RetryHint.CHECK_STATUS_FIRST
