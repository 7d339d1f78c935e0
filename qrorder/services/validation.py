"""
Request Validation

Turns untrusted JSON bodies into normalized request schemas. Pydantic errors
are flattened into ``{"field", "message"}`` pairs and raised as the domain
``ValidationError`` so callers answer with a 400, never a 500.
"""

from typing import Any, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from qrorder.core.exceptions import ValidationError
from qrorder.schemas import AIChatRequest, OrderCreate, TableCallCreate

RequestT = TypeVar("RequestT", bound=BaseModel)


def format_errors(exc: PydanticValidationError) -> list[dict[str, Any]]:
    """Flatten pydantic errors to field/message pairs."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "body"
        errors.append({"field": field, "message": error.get("msg", "Invalid value")})
    return errors


def validate_payload(schema: Type[RequestT], body: Any) -> RequestT:
    if not isinstance(body, dict):
        raise ValidationError(
            "Request body must be a JSON object",
            errors=[{"field": "body", "message": "Expected a JSON object"}],
        )
    try:
        return schema.model_validate(body)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid request data", errors=format_errors(exc)) from exc


def validate_order_request(body: Any) -> OrderCreate:
    """
    Validate an order submission.

    Requires a non-empty item list (positive integer quantities,
    non-negative prices) and either ``table_id`` or ``organization_id``.
    Unknown fields are rejected.

    Raises:
        ValidationError: with field-level detail
    """
    return validate_payload(OrderCreate, body)


def validate_table_call(body: Any) -> TableCallCreate:
    return validate_payload(TableCallCreate, body)


def validate_chat_message(body: Any) -> AIChatRequest:
    return validate_payload(AIChatRequest, body)
