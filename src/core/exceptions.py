"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries. Validation and transition errors
are always raised before any persistence call is attempted.
"""

from typing import Any, Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """
    Persistence failure wrapped with the name of the failing operation.

    Never retried automatically; retry is a caller policy.
    """

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.operation = operation
        super().__init__(
            f"{operation} failed: {message}",
            details or {"operation": operation}
        )


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class SerializationException(ApplicationException):
    """Raised when tags, labels or custom fields cannot be encoded or decoded."""

    def __init__(self, field: str, message: str, details: Optional[dict] = None):
        self.field = field
        super().__init__(f"Cannot serialize '{field}': {message}", details or {"field": field})


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class InvalidTransitionException(DomainException):
    """Raised when a lifecycle operation is not allowed from the current status."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str],
        current_status: Any,
        target_status: Any,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        self.current_status = getattr(current_status, "value", current_status)
        self.target_status = getattr(target_status, "value", target_status)
        super().__init__(
            f"{resource_type} '{resource_id}' cannot move from "
            f"'{self.current_status}' to '{self.target_status}'",
            details or {
                "current_status": self.current_status,
                "target_status": self.target_status,
            }
        )


class ConflictException(DomainException):
    """Raised when a guarded mutation no longer matches the item's stored state."""


class DeadlineExceededException(ApplicationException):
    """Raised when an operation does not finish within its deadline."""

    def __init__(self, operation: str, timeout_seconds: float):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"{operation} exceeded its deadline of {timeout_seconds}s",
            {"operation": operation, "timeout_seconds": timeout_seconds}
        )


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""
