# backend/mentorlink/core/exceptions.py
"""
Domain-specific exceptions for the MentorLink messaging platform.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

# Stable machine-readable codes surfaced to clients
NO_MENTORSHIP_CONNECTION = "NO_MENTORSHIP_CONNECTION"
NOT_MESSAGE_PARTICIPANT = "NOT_MESSAGE_PARTICIPANT"
RECIPIENT_NOT_FOUND = "RECIPIENT_NOT_FOUND"
MESSAGE_NOT_FOUND = "MESSAGE_NOT_FOUND"


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
        """Convert to an HTTPException carrying the stable error code."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "error": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ForbiddenException(DomainException):
    """Raised when user lacks permission for an action."""

    status_code = status.HTTP_403_FORBIDDEN


class TransientInfraException(DomainException):
    """
    Raised when shared infrastructure (presence cache, pub/sub relay,
    attachment storage) is unavailable.

    Messaging paths catch this and degrade to durable-store-only behaviour;
    it only reaches the client where no degraded mode exists (uploads).
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "message": "An error occurred processing your request",
                "code": "internal_server_error",
            },
        )


# Specific business exceptions


class NoMentorshipConnectionException(ForbiddenException):
    """Raised when two users lack an accepted mentorship connection."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message=message
            or "Messages can only be exchanged between accepted mentorship connections",
            code=NO_MENTORSHIP_CONNECTION,
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """
