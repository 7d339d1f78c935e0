"""
Domain Exceptions

Errors raised by the ordering services. They carry no HTTP knowledge;
``qrorder.main`` maps each class to a status code and the standard
``ErrorResponse`` body.

    ValidationError      -> 400
    InvalidTransition    -> 400
    NotFound             -> 404
    UpstreamUnavailable  -> 502
    StoreError           -> 500
    DeliveryFailure      -> never leaves the webhook dispatcher
"""

from typing import Any, Optional


class QROrderError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(QROrderError):
    """Malformed or missing input."""

    status_code = 400
    error = "Invalid request data"

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class NotFound(QROrderError):
    """A referenced tenant, table, order or webhook config does not exist."""

    status_code = 404
    error = "Not Found"

    def __init__(self, entity: str, entity_id: Optional[str] = None):
        if entity_id is not None:
            message = f"{entity} {entity_id} not found"
        else:
            message = f"{entity} not found"
        super().__init__(message)
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransition(QROrderError):
    """Illegal order status change."""

    status_code = 400
    error = "Invalid status transition"

    def __init__(self, current: str, requested: str, reason: Optional[str] = None):
        message = reason or f"Cannot change order status from '{current}' to '{requested}'"
        super().__init__(message)
        self.current = current
        self.requested = requested


class UpstreamUnavailable(QROrderError):
    """The AI completion provider failed or timed out."""

    status_code = 502
    error = "Upstream service unavailable"


class StoreError(QROrderError):
    """Persistence failure."""

    status_code = 500
    error = "Internal Server Error"


class DeliveryFailure(QROrderError):
    """A webhook delivery failed after all retries."""

    def __init__(
        self,
        config_id: str,
        event_type: str,
        attempts: int,
        reason: str,
    ):
        super().__init__(
            f"Webhook {config_id} ({event_type}) failed after {attempts} attempt(s): {reason}"
        )
        self.config_id = config_id
        self.event_type = event_type
        self.attempts = attempts
        self.reason = reason
