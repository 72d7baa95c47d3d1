"""
Application error hierarchy.

Every error raised on purpose by a route or service is an ``AppError`` and is
rendered by the handlers in ``main.py`` as::

    {"success": false, "message": ..., "error": {"code": ..., "details": ...}}
"""

from typing import Any, Optional

from fastapi import status


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "Something went wrong",
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.details = details

    def to_dict(self) -> dict:
        error = {"code": self.error_code}
        if self.details is not None:
            error["details"] = self.details
        return {"success": False, "message": self.message, "error": error}


class BadRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INVALID_INPUT"

    def __init__(self, message: str = "Bad request", details: Any = None):
        super().__init__(message, details=details)


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Unauthorized", error_code: str = "UNAUTHORIZED"):
        super().__init__(message, error_code=error_code)


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "FORBIDDEN"

    def __init__(self, message: str = "Access denied", details: Any = None):
        super().__init__(message, details=details)


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", identifier: Optional[str] = None):
        details = {"resource": resource}
        if identifier:
            details["identifier"] = identifier
        super().__init__(f"{resource} not found", details=details)


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "ALREADY_EXISTS"

    def __init__(self, message: str = "Resource already exists", details: Any = None):
        super().__init__(message, details=details)


class ValidationError(AppError):
    status_code = 422
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str = "Validation failed", errors: Optional[list] = None):
        super().__init__(message, details={"errors": errors or []})

    @classmethod
    def from_pydantic(cls, errors: list) -> "ValidationError":
        formatted = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
                "message": err.get("msg"),
            }
            for err in errors
        ]
        return cls(errors=formatted)


class RateLimitError(AppError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "RATE_LIMITED"

    def __init__(self, message: str = "Too many requests, please try again later"):
        super().__init__(message)


class InternalError(AppError):
    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)


class DatabaseError(AppError):
    error_code = "DATABASE_ERROR"

    def __init__(self, message: str = "Database operation failed", operation: Optional[str] = None):
        super().__init__(message, details={"operation": operation} if operation else None)


class ExternalServiceError(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, message: str = "External service error"):
        super().__init__(f"{service}: {message}", details={"service": service})


class AuthenticationError(UnauthorizedError):
    MESSAGES = {
        "generic": ("Authentication failed", "UNAUTHORIZED"),
        "invalid_credentials": ("Invalid email or password", "INVALID_CREDENTIALS"),
        "token_expired": ("Token has expired", "TOKEN_EXPIRED"),
        "token_invalid": ("Invalid token", "TOKEN_INVALID"),
        "token_missing": ("No authentication token provided", "UNAUTHORIZED"),
        "email_not_verified": ("Please verify your email first", "UNAUTHORIZED"),
        "account_disabled": ("Account has been disabled", "FORBIDDEN"),
    }

    def __init__(self, kind: str = "generic"):
        message, code = self.MESSAGES.get(kind, self.MESSAGES["generic"])
        super().__init__(message, error_code=code)
        self.kind = kind

    @classmethod
    def invalid_credentials(cls):
        return cls("invalid_credentials")

    @classmethod
    def token_expired(cls):
        return cls("token_expired")

    @classmethod
    def token_invalid(cls):
        return cls("token_invalid")

    @classmethod
    def token_missing(cls):
        return cls("token_missing")

    @classmethod
    def email_not_verified(cls):
        return cls("email_not_verified")

    @classmethod
    def account_disabled(cls):
        return cls("account_disabled")


class BusinessError(AppError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"

    def __init__(self, message: str, error_code: str = "CONFLICT", details: Any = None):
        super().__init__(message, error_code=error_code, details=details)


class BookingError(BusinessError):
    MESSAGES = {
        "generic": ("Booking operation failed", "CONFLICT"),
        "slot_unavailable": ("Selected time slot is no longer available", "SLOT_UNAVAILABLE"),
        "already_booked": ("You already have a booking at this time", "BOOKING_CONFLICT"),
        "lawyer_unavailable": ("Lawyer is not available at this time", "SLOT_UNAVAILABLE"),
        "already_cancelled": ("Booking has already been cancelled", "CONFLICT"),
        "already_completed": ("Booking has already been completed", "CONFLICT"),
    }

    def __init__(self, kind: str = "generic", message: Optional[str] = None):
        default_message, code = self.MESSAGES.get(kind, self.MESSAGES["generic"])
        super().__init__(message or default_message, error_code=code)
        self.kind = kind

    @classmethod
    def slot_unavailable(cls):
        return cls("slot_unavailable")

    @classmethod
    def already_booked(cls):
        return cls("already_booked")

    @classmethod
    def lawyer_unavailable(cls):
        return cls("lawyer_unavailable")

    @classmethod
    def already_cancelled(cls):
        return cls("already_cancelled")

    @classmethod
    def already_completed(cls):
        return cls("already_completed")

    @classmethod
    def generic(cls, message: Optional[str] = None):
        return cls("generic", message)


class PaymentError(BusinessError):
    MESSAGES = {
        "generic": ("Payment operation failed", "PAYMENT_FAILED"),
        "failed": ("Payment processing failed", "PAYMENT_FAILED"),
        "already_paid": ("Payment has already been processed", "CONFLICT"),
        "refund_failed": ("Refund processing failed", "PAYMENT_FAILED"),
        "not_refundable": ("This payment is not eligible for refund", "CONFLICT"),
    }

    def __init__(self, kind: str = "generic", details: Any = None):
        message, code = self.MESSAGES.get(kind, self.MESSAGES["generic"])
        super().__init__(message, error_code=code, details=details)
        self.kind = kind

    @classmethod
    def already_paid(cls):
        return cls("already_paid")

    @classmethod
    def failed(cls, details: Any = None):
        return cls("failed", details)

    @classmethod
    def not_refundable(cls):
        return cls("not_refundable")

    @classmethod
    def refund_failed(cls, details: Any = None):
        return cls("refund_failed", details)
