"""
Domain exceptions for the booking engine.

Services raise these; ``main.py`` turns them into HTTP responses through
``to_http_exception`` so routers never build status codes for business
failures themselves.
"""
from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Malformed or missing fields, non-future start time, bad duration."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Mentor, learner, session, review, date or slot is missing."""

    status_code = status.HTTP_404_NOT_FOUND


class UnavailableException(DomainException):
    """Mentor not bookable, or the interval is outside declared windows."""

    status_code = HTTP_422_UNPROCESSABLE


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class ForbiddenException(DomainException):
    """Actor is not a party allowed to perform the action."""

    status_code = status.HTTP_403_FORBIDDEN


class StateTransitionException(DomainException):
    """Transition not legal from the current status, or its time gate is closed."""

    status_code = status.HTTP_400_BAD_REQUEST


class BookingConflictException(ConflictException):
    """Raised when a booking overlaps an existing pending/confirmed session."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing session",
            code="BOOKING_CONFLICT",
            details=details or {},
        )


class InsufficientNoticeException(StateTransitionException):
    """Raised when a cancellation falls inside the notice window."""

    def __init__(self, required_hours: int, provided_hours: float):
        super().__init__(
            message=f"Sessions can only be cancelled at least {required_hours} hours in advance",
            code="INSUFFICIENT_NOTICE",
            details={
                "required_hours": required_hours,
                "provided_hours": round(provided_hours, 2),
            },
        )
