"""
Error taxonomy for the storefront API.

Every error carries the HTTP status it maps to; the exception handler
registered in main.py renders them as {"error": message} bodies.
"""

from typing import Any, Dict, Optional


class StorefrontError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationError(StorefrontError):
    """Missing or malformed input."""

    status_code = 400


class Unauthorized(StorefrontError):
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFound(StorefrontError):
    status_code = 404


class UpstreamFailure(StorefrontError):
    """The store or the messaging transport reported an error."""

    status_code = 500


class ThemeDeactivationFailure(UpstreamFailure):
    """Step (a) of theme activation failed; theme state is unchanged."""


class PartialActivationFailure(StorefrontError):
    """
    Deactivation succeeded but activating the target did not.

    Zero themes are active. Callers should retry the activation step alone
    (ThemeActivationManager.complete_activation) rather than start over.
    """

    status_code = 500

    def __init__(self, theme_id: str, message: str = "Theme activation partially failed"):
        super().__init__(message)
        self.theme_id = theme_id

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message, "partial": True, "id": self.theme_id}
