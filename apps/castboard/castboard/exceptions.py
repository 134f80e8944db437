"""
Service-layer exceptions.

Handlers translate these into JSON error payloads; the calendar mirror
absorbs ExternalServiceError so it never reaches a client.
"""

from __future__ import annotations

from typing import Any, Optional


class ServiceError(Exception):
    """Base exception for service layer errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ServiceError):
    """Raised for missing or malformed input and rule violations."""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class NotFoundError(ValidationError):
    """Raised when a referenced actor, slot or casting does not exist."""

    status_code = 404

    def __init__(self, resource: str, identifier: Any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class ParseError(ValidationError):
    """Raised when a booking time label cannot be read."""


class AuthError(ServiceError):
    """Raised for missing credentials (401) or an insufficient role (403)."""

    def __init__(self, message: str = "Unauthorized", status_code: int = 401):
        self.status_code = status_code
        super().__init__(message)


class ExternalServiceError(ServiceError):
    """Raised by the calendar and crawler clients when the provider fails."""

    status_code = 502

    def __init__(self, service: str, message: str, status: Optional[int] = None):
        self.service = service
        self.status = status
        super().__init__(f"{service}: {message}")
