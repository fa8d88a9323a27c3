# backend/therapport/core/exceptions.py
"""
Domain-specific exceptions for the Therapport platform.

Every exception carries a machine-readable ``code`` and a ``details`` dict
with the ids and amounts needed for logging. Ledger row identifiers are never
placed in ``details`` because the payload is returned to end users.
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

    def to_payload(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, "details": self.details}

    def to_http_exception(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.to_payload())


class ValidationException(DomainException):
    """Raised when input or business validation fails. Safe to retry with corrected input."""

    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedException(DomainException):
    """Raised when no authenticated principal is present."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenException(DomainException):
    """Raised when the principal may not act on the resource."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data. Caller should re-query and retry."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_payload(self) -> Dict[str, Any]:
        return {
            "message": self.message or "An error occurred processing your request",
            "code": self.code,
            "details": self.details if self.details else {},
        }


# Specific business exceptions


class BookingConflictException(ConflictException):
    """Raised when a booking overlaps a confirmed booking for the same room."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot is already booked",
            code="BOOKING_CONFLICT",
            details=details or {},
        )


class InsufficientCreditException(ValidationException):
    """Raised when a credit draw exceeds the available balance. Nothing is mutated."""

    def __init__(self, requested_pence: int, available_pence: int):
        self.requested_pence = requested_pence
        self.available_pence = available_pence
        super().__init__(
            message=(
                f"Insufficient credits: requested £{requested_pence / 100:.2f}, "
                f"available £{available_pence / 100:.2f}"
            ),
            code="INSUFFICIENT_CREDIT",
            details={
                "requested_pence": requested_pence,
                "available_pence": available_pence,
            },
        )


class InsufficientVoucherHoursException(ValidationException):
    """Raised when a voucher draw exceeds the available hours."""

    def __init__(self, requested_hours: Any, available_hours: Any):
        super().__init__(
            message=(
                f"Insufficient voucher hours: requested {requested_hours}, "
                f"available {available_hours}"
            ),
            code="INSUFFICIENT_VOUCHER_HOURS",
            details={
                "requested_hours": str(requested_hours),
                "available_hours": str(available_hours),
            },
        )


class LedgerIntegrityException(ConflictException):
    """Raised when a refund or revocation would break the ledger's audit history."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="LEDGER_INTEGRITY", details=details or {})


class PaymentGatewayUnavailableException(ValidationException):
    """Raised when a card payment is needed but Stripe is not configured."""

    def __init__(self, amount_pence: int):
        super().__init__(
            message=(
                "Insufficient credit and card payments are unavailable. "
                "Please top up your credit or contact the practice."
            ),
            code="PAYMENT_GATEWAY_UNAVAILABLE",
            details={"amount_pence": amount_pence},
        )


class CancellationWindowException(ValidationException):
    """Raised when a booking is changed or cancelled inside the notice window."""

    def __init__(self, notice_hours: int, action: str = "cancelled"):
        super().__init__(
            message=f"Bookings cannot be {action} less than {notice_hours} hours before start",
            code="INSIDE_CANCELLATION_WINDOW",
            details={"notice_hours": notice_hours},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as connection issues,
    query failures, or constraint violations.
    """
