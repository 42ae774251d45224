"""
SimpleScrum Error Hierarchy

Base error and specific error types for all SimpleScrum components.
Errors carry metadata for structured logging.
"""

from typing import Any, Dict, Optional


class SimpleScrumError(RuntimeError):
    """
    Base error for SimpleScrum components. Carries metadata for structured logging.

    Attributes:
        category: Error category for classification (e.g., "validation", "storage")
        retryable: Whether the operation can be retried
        metadata: Additional context for logging and debugging
    """

    category: str = "runtime"
    retryable: bool = True

    def __init__(
        self,
        message: str,
        *,
        metadata: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.metadata = metadata or {}
        if retryable is not None:
            self.retryable = retryable


# Validation Errors
class ValidationError(SimpleScrumError, ValueError):
    """
    Raised when a field is outside its permitted domain.

    Examples: story points not on the fixed scale, non-positive team capacity,
    selecting a vague or already-assigned PBI into a sprint. No entity state
    changes when this is raised.
    """

    category = "validation"
    retryable = False


class NotFoundError(SimpleScrumError):
    """Raised when an operation targets an unknown identifier. Treated as a caller bug."""

    category = "not_found"
    retryable = False


# Configuration Errors
class ConfigError(SimpleScrumError):
    """Raised when configuration is invalid or missing."""

    category = "config"
    retryable = False


# Identity Errors
class AuthenticationError(SimpleScrumError):
    """Raised for bad credentials, duplicate sign-ups, or calls without a session."""

    category = "auth"
    retryable = False


# Storage Errors
class PersistenceError(SimpleScrumError):
    """
    Raised when the persistence collaborator fails.

    The local mutation that triggered the call has already been applied and is
    not rolled back; the operation stays queued for retry.
    """

    category = "storage"
    retryable = True
