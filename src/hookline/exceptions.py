"""Hookline exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from HooklineError for easy catching.
"""

from __future__ import annotations


class HooklineError(Exception):
    """Base exception for all Hookline errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "hookline_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HooklineError):
    """Invalid input provided.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class NotFoundError(HooklineError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "webhook", "event").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class PersistenceError(HooklineError):
    """A durable write or read against the store failed.

    Raised to the caller of ``append`` when an event could not be committed.
    No sequence number is consumed by a failed append.
    """

    code: str = "persistence_error"


class DeliveryError(HooklineError):
    """A single webhook delivery attempt failed.

    Never propagated to publishers; recorded on the delivery row instead.
    """

    code: str = "delivery_error"


class TransportError(DeliveryError):
    """Network failure contacting a webhook (connect error, timeout, ...)."""

    code: str = "transport_error"


class RejectedError(DeliveryError):
    """Webhook answered with a non-2xx status.

    Attributes:
        status_code: HTTP status returned by the endpoint.
        response_body: Response body (possibly truncated) for diagnostics.
    """

    code: str = "rejected"

    def __init__(self, status_code: int, response_body: str | None = None) -> None:
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(f"webhook returned status {status_code}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "status_code": self.status_code,
                "message": self.message,
            }
        }


class ConfigurationError(HooklineError):
    """Configuration error.

    Raised when required configuration is missing or invalid.
    """

    code: str = "configuration_error"
