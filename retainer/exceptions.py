"""Custom exception hierarchy for retainer.

Exception Hierarchy:
    RetainerError (base)
    ├── ConfigurationError - invalid scheduler/backend settings (also a ValueError)
    ├── BackupValidationError - malformed Backup or backend output (also a ValueError)
    └── BackendError - a storage backend operation failed

Usage:
    from retainer.exceptions import BackendError

    try:
        path.unlink()
    except OSError as e:
        raise BackendError("Failed to delete backup", backend="disk", id=name) from e
"""

from typing import Any, Optional


class RetainerError(Exception):
    """Base exception for all retainer errors.

    Attributes:
        message: Human-readable error description
        context: Additional context about the error (e.g., ids, paths)
    """

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with context."""
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(RetainerError, ValueError):
    """Configuration or settings error."""

    def __init__(
        self,
        message: str = "Configuration error",
        *,
        setting: Optional[str] = None,
        **context: Any,
    ) -> None:
        if setting:
            context["setting"] = setting
        super().__init__(message, **context)


# =============================================================================
# Validation Errors
# =============================================================================


class BackupValidationError(RetainerError, ValueError):
    """A Backup record or a backend return value is malformed."""

    def __init__(self, message: str = "Invalid backup", **context: Any) -> None:
        super().__init__(message, **context)


# =============================================================================
# Backend Errors
# =============================================================================


class BackendError(RetainerError):
    """A storage backend operation failed."""

    def __init__(
        self,
        message: str = "Backend operation failed",
        *,
        backend: Optional[str] = None,
        operation: Optional[str] = None,
        **context: Any,
    ) -> None:
        if backend:
            context["backend"] = backend
        if operation:
            context["operation"] = operation
        super().__init__(message, **context)
