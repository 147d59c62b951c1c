"""
Sparkmatch — Application exceptions.

Every failure that crosses the service boundary carries a stable,
machine-readable ``ErrorCode`` and an HTTP status so that API clients and
the operator CLI can tell client-correctable failures (validation, not
found, forbidden, conflict) from retryable ones (unavailable).
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Stable error codes returned in every error body."""

    # Validation errors (422)
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Resource errors (403, 404)
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"

    # State precondition errors (409)
    CONFLICT = "CONFLICT"
    INVALID_MATCH_TYPE = "INVALID_MATCH_TYPE"
    ALREADY_EXPRESSED = "ALREADY_EXPRESSED"
    NO_INTEREST_TO_ACCEPT = "NO_INTEREST_TO_ACCEPT"
    MATCHING_ALREADY_RUNNING = "MATCHING_ALREADY_RUNNING"

    # Server errors (500+)
    UNAVAILABLE = "UNAVAILABLE"
    INTERNAL = "INTERNAL"


class AppException(Exception):
    """
    Base exception class for application errors.
    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL,
        status_code: int = 500,
        field: str | None = None,
        metadata: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.field = field
        self.metadata = metadata or {}
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return bool(self.metadata.get("retryable", False))

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to response dictionary"""
        response = {
            "detail": self.message,
            "code": self.code.value,
        }
        if self.field:
            response["field"] = self.field
        if self.metadata:
            response["metadata"] = self.metadata
        return response


# Resource Errors (403, 404)


class NotFoundError(AppException):
    """Requested resource does not exist"""

    def __init__(
        self,
        resource: str = "Resource",
        message: str | None = None,
        metadata: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message or f"{resource} not found",
            code=ErrorCode.NOT_FOUND,
            status_code=404,
            metadata=metadata,
        )


class MatchNotFoundError(NotFoundError):
    """Match record absent or hidden from the caller"""

    def __init__(self, match_id: Any | None = None):
        super().__init__(
            resource="Match",
            metadata={"match_id": str(match_id)} if match_id else None,
        )


class ForbiddenError(AppException):
    """Caller is not a participant of the record"""

    def __init__(self, message: str = "You are not part of this match"):
        super().__init__(
            message=message,
            code=ErrorCode.FORBIDDEN,
            status_code=403,
        )


# Conflict Errors (409)


class ConflictError(AppException):
    """Record state does not allow the requested action"""

    def __init__(
        self,
        message: str = "Match state does not allow this action",
        code: ErrorCode = ErrorCode.CONFLICT,
        metadata: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            code=code,
            status_code=409,
            metadata=metadata,
        )


class InvalidMatchTypeError(ConflictError):
    """Operation is not defined for this match type"""

    def __init__(self, expected: str, actual: str):
        super().__init__(
            message=f"Operation requires a {expected} match",
            code=ErrorCode.INVALID_MATCH_TYPE,
            metadata={"expected": expected, "actual": actual},
        )


class AlreadyExpressedError(ConflictError):
    """Interest was already expressed on this one-way match"""

    def __init__(self, message: str = "Interest already expressed"):
        super().__init__(message=message, code=ErrorCode.ALREADY_EXPRESSED)


class NoInterestToAcceptError(ConflictError):
    """Side 2 tried to accept before side 1 expressed interest"""

    def __init__(self, message: str = "No interest to accept"):
        super().__init__(message=message, code=ErrorCode.NO_INTEREST_TO_ACCEPT)


class MatchingAlreadyRunningError(ConflictError):
    """A daily matching sweep is already in progress"""

    def __init__(self, message: str = "Daily matching is already running"):
        super().__init__(message=message, code=ErrorCode.MATCHING_ALREADY_RUNNING)


# Server Errors (500+)


class UnavailableError(AppException):
    """Transient persistence failure; the whole operation may be retried"""

    def __init__(
        self,
        message: str = "Service temporarily unavailable, please retry",
        metadata: dict[str, Any] | None = None,
    ):
        super().__init__(
            message=message,
            code=ErrorCode.UNAVAILABLE,
            status_code=503,
            metadata={"retryable": True, **(metadata or {})},
        )
