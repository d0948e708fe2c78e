# backend/courtbook/core/exceptions.py
"""
Domain-specific exceptions for the court booking platform.

These exceptions carry a human-readable message plus a machine-checkable
code so the API layer can render a specific explanation to the caller.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


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
    """Raised when a policy, authorization or status-transition rule fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class UnauthorizedException(DomainException):
    """Raised when the caller cannot be identified."""

    status_code = status.HTTP_401_UNAUTHORIZED


class ServiceException(DomainException):
    """Raised when a service operation fails (database or payment provider)."""

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


class BookingConflictException(ConflictException):
    """Raised when a requested booking slot cannot be taken."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        conflict_type: str = "time_overlap",
        conflicting_booking_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        message = message or "This time slot conflicts with an existing booking"
        payload: Dict[str, Any] = {"conflict_type": conflict_type, "message": message}
        if conflicting_booking_id:
            payload["conflicting_booking_id"] = conflicting_booking_id
        if details:
            payload.update(details)
        super().__init__(message=message, code="BOOKING_CONFLICT", details=payload)
        self.conflict_type = conflict_type
        self.conflicting_booking_id = conflicting_booking_id


class PolicyViolationException(ValidationException):
    """Raised when a venue booking policy rejects a requested slot."""

    def __init__(self, rule: str, message: str):
        super().__init__(message=message, code="POLICY_VIOLATION", details={"rule": rule})
        self.rule = rule


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    Used when data access operations fail, such as connection issues,
    query failures, or constraint violations.
    """
