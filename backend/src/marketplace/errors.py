"""
Exception classes for the marketplace core.
Every precondition failure surfaces as one of these with a precise message,
so callers can tell "already voted" apart from "not pending moderation".
"""
from typing import Any, Dict, Optional


class MarketplaceError(Exception):
    """Base exception for domain errors raised by the marketplace core."""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {'error': self.message, 'code': self.code}
        if self.details:
            body['details'] = self.details
        return body


class ForbiddenError(MarketplaceError):
    """Raised when the caller is not allowed to perform the operation."""

    status_code = 403

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "FORBIDDEN", details)


class NotFoundError(MarketplaceError):
    """Raised when a referenced submission, user, task or payment is missing."""

    status_code = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "NOT_FOUND", details)


class InvalidStateError(MarketplaceError):
    """Raised when an entity is not in a state that allows the operation."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "INVALID_STATE", details)


class ConflictError(MarketplaceError):
    """Raised when the operation would duplicate an existing record."""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFLICT", details)


class BadRequestError(MarketplaceError):
    """Raised when a request violates a policy such as the minimum withdrawal."""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "BAD_REQUEST", details)


class ConfigurationError(MarketplaceError):
    """Raised when the stored platform settings are unusable."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "CONFIGURATION_ERROR", details)


class AuthenticationError(MarketplaceError):
    """Raised when a request carries no authenticated caller."""

    status_code = 401

    def __init__(self, message: str = 'Unauthorized'):
        super().__init__(message, "UNAUTHORIZED")
