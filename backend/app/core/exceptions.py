# backend/app/core/exceptions.py
"""
Domain-specific exceptions for the Lumexa booking core.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
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
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class UnauthorizedException(DomainException):
    """Raised when user is not authenticated."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Raised when user lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class SlotUnavailableException(ConflictException):
    """Raised when a slot is already reserved by another booking."""

    def __init__(self, slot_id: str):
        super().__init__(
            message="slot unavailable",
            code="SLOT_UNAVAILABLE",
            details={"slot_id": slot_id},
        )


class AvailabilityOverlapException(ConflictException):
    """Raised when a slot overlaps with an existing slot of the same teacher."""

    def __init__(self, new_range: str, conflicting_range: str):
        super().__init__(
            message=f"Overlapping slot: {new_range} conflicts with {conflicting_range}",
            code="AVAILABILITY_OVERLAP",
            details={
                "new_slot": new_range,
                "conflicting_slot": conflicting_range,
            },
        )


class InvalidPaymentTransitionException(ConflictException):
    """Raised when a booking's payment status cannot move to the requested state."""

    def __init__(self, booking_id: str, current: str, target: str):
        super().__init__(
            message=f"Booking cannot move from {current} to {target}",
            code="INVALID_PAYMENT_TRANSITION",
            details={"booking_id": booking_id, "current": current, "target": target},
        )


class TeacherSuspendedException(BusinessRuleException):
    """Raised when a suspended teacher's slots are created or booked."""

    def __init__(self, teacher_id: str):
        super().__init__(
            message="Teacher account is suspended",
            code="TEACHER_SUSPENDED",
            details={"teacher_id": teacher_id},
        )


class TooEarlyException(BusinessRuleException):
    """Raised when a participant tries to join before the admission window opens."""

    def __init__(self, minutes_remaining: int):
        self.minutes_remaining = minutes_remaining
        super().__init__(
            message=f"Class opens in {minutes_remaining} minute(s)",
            code="TOO_EARLY",
            details={"minutes_remaining": minutes_remaining},
        )


class SessionEndedException(BusinessRuleException):
    """Raised when a participant tries to join after the class has ended."""

    def __init__(self) -> None:
        super().__init__(message="Class session has ended", code="SESSION_ENDED")


class ExternalServiceException(ServiceException):
    """
    Raised when the payment or video provider fails.

    The provider's own error text is logged by the caller and never
    forwarded to clients.
    """

    def __init__(self, provider: str, message: Optional[str] = None):
        self.provider = provider
        super().__init__(
            message=message or "Payment or video provider unavailable",
            code="EXTERNAL_SERVICE_UNAVAILABLE",
        )

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={
                "message": self.message,
                "code": self.code,
                "details": {},
            },
        )


class WebhookAuthenticityException(UnauthorizedException):
    """Raised when an inbound webhook fails signature verification."""

    def __init__(self) -> None:
        super().__init__(message="Unauthorized", code="WEBHOOK_SIGNATURE_INVALID")


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
