"""Custom exceptions for the leadflow application."""

from __future__ import annotations


class LeadflowError(Exception):
    """Base exception for leadflow."""

    pass


class ValidationError(LeadflowError):
    """Raised when input is malformed before any request is made."""

    def __init__(
        self,
        message: str,
        missing_fields: list[str] | None = None,
        issues: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.missing_fields = list(missing_fields or [])
        self.issues = list(issues or [])


class PreconditionError(LeadflowError):
    """Raised when a transition rule blocks the requested action."""

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class ConflictError(LeadflowError):
    """Raised when the store rejects a change because of state it holds."""

    retryable = False


class TransientError(LeadflowError):
    """Raised on network or availability failures. Retryable by the user."""

    retryable = True


class NotFoundError(LeadflowError):
    """Raised when a resource is not found."""

    pass


class ConfigurationError(LeadflowError):
    """Raised when configuration or the stage catalog is invalid."""

    pass


class InvalidTransitionError(LeadflowError, ValueError):
    """Raised when a disallowed job status transition is attempted."""
