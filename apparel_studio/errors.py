"""
Error types for the Apparel Studio service.

Provides specific exception types for the failure modes of order intake,
preview rendering and status handling, with enough context for logging
and JSON error responses.
"""

from typing import Any, Dict, List, Optional


class StudioError(Exception):
    """Base exception for all Apparel Studio errors."""

    status_code = 500

    def __init__(self, message: str, details: Dict[str, Any] = None, suggestions: List[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.suggestions = suggestions or []

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'details': self.details,
            'suggestions': self.suggestions
        }


class ValidationError(StudioError):
    """Raised when user input validation fails."""
    status_code = 400


class ProcessingError(StudioError):
    """Raised when a processing step fails."""
    pass


class RenderError(ProcessingError):
    """Raised when raster rendering fails."""
    pass


class ImageSourceError(ValidationError):
    """Raised when an image source points outside the assets directory or allowed hosts."""

    def __init__(self, message: str, source: str):
        super().__init__(
            message,
            details={'source': source[:200]},
            suggestions=[
                "Reference design images relative to the assets directory",
                "Host remote images on an allowed domain"
            ]
        )


class OrderNotFoundError(StudioError):
    """Raised when a custom order id does not resolve."""
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__(
            f"Custom order not found: {order_id}",
            details={'order_id': order_id},
            suggestions=["Check the order id in the request URL"]
        )


class DesignPolicyError(ValidationError):
    """Raised when design text violates the content policy."""

    def __init__(self, reason: str, placement_id: Optional[str] = None):
        super().__init__(
            reason,
            details={'placement_id': placement_id},
            suggestions=["Adjust the design text and submit again"]
        )


class UnknownStatusError(ValidationError):
    """Raised when staff submit a status outside the canonical vocabulary."""

    def __init__(self, status: str, allowed: List[str]):
        super().__init__(
            f"Unknown order status: {status}",
            details={'status': status, 'allowed': allowed},
            suggestions=[f"Use one of: {', '.join(allowed)}"]
        )


def error_response(error: Exception) -> Dict[str, Any]:
    """Build the JSON body for any exception raised inside a request."""
    if isinstance(error, StudioError):
        return error.to_dict()

    return {
        'error_type': type(error).__name__,
        'message': "Unexpected error while processing the request",
        'details': {},
        'suggestions': ["Try again", "Contact support if the problem persists"]
    }
