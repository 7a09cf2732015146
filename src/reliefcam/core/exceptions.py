"""
Custom exceptions for ReliefCAM.

All ReliefCAM exceptions inherit from ReliefCamError for easy catching.
Degenerate geometry never raises; it yields empty results instead.
"""

from typing import Any


class ReliefCamError(Exception):
    """Base exception for all ReliefCAM errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class ConfigurationError(ReliefCamError):
    """Raised when configuration is invalid or missing."""

    pass


class GeometryError(ReliefCamError):
    """Raised when a mesh cannot be loaded or converted."""

    pass


class ToolpathError(ReliefCamError):
    """Raised when toolpath generation or export is misconfigured."""

    pass


class JobStateError(ReliefCamError):
    """Raised when a carve job operation is called in the wrong state."""

    def __init__(
        self,
        message: str,
        state: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.state = state
