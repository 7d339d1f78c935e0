"""Tests for request payload validation."""

import pytest

from qrorder.core.exceptions import ValidationError
from qrorder.services.validation import (
    validate_chat_message,
    validate_order_request,
    validate_table_call,
)


def fields(exc_info) -> set[str]:
    return {error["field"] for error in exc_info.value.errors}


class TestOrderRequest:

    def test_valid_request_is_normalized(self):
        request = validate_order_request({
            "table_id": "table-1",
            "items": [{"name": "  Margherita ", "price": 12.5, "quantity": 2}],
            "customer_name": " Ana ",
        })

        assert request.items[0].name == "Margherita"
        assert request.items[0].line_total == 25.0
        assert request.customer_name == "Ana"

    def test_integer_price_is_accepted(self):
        request = validate_order_request({
            "organization_id": "org-1",
            "items": [{"name": "Water", "price": 2, "quantity": 1}],
        })

        assert request.items[0].price == 2.0

    def test_empty_items(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_request({"table_id": "table-1", "items": []})

        assert "items" in fields(exc_info)

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", 100])
    def test_bad_quantity(self, quantity):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_request({
                "table_id": "table-1",
                "items": [{"name": "Soup", "price": 5.0, "quantity": quantity}],
            })

        assert "items.0.quantity" in fields(exc_info)

    @pytest.mark.parametrize("price", [-0.01, "5.00", None, float("inf"), float("nan")])
    def test_bad_price(self, price):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_request({
                "table_id": "table-1",
                "items": [{"name": "Soup", "price": price, "quantity": 1}],
            })

        assert "items.0.price" in fields(exc_info)

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_request({
                "table_id": "table-1",
                "items": [{"name": "Soup", "price": 5.0, "quantity": 1}],
                "total_amount": 0.01,
            })

        assert "total_amount" in fields(exc_info)

    def test_unknown_item_fields_rejected(self):
        with pytest.raises(ValidationError):
            validate_order_request({
                "table_id": "table-1",
                "items": [{"name": "Soup", "price": 5.0, "quantity": 1, "discount": 5}],
            })

    def test_table_or_organization_required(self):
        with pytest.raises(ValidationError):
            validate_order_request({"items": [{"name": "Soup", "price": 5.0, "quantity": 1}]})

    def test_non_object_body(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_order_request(["not", "an", "object"])

        assert fields(exc_info) == {"body"}


class TestTableCall:

    def test_defaults(self):
        request = validate_table_call({"organization_id": "org-1", "table_id": "table-1"})

        assert request.call_type == "service"

    def test_required_fields(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_table_call({"call_type": "bill"})

        assert fields(exc_info) == {"organization_id", "table_id"}


class TestChatMessage:

    def test_valid(self):
        request = validate_chat_message({
            "message": "Do you have vegan options?",
            "session_id": "guest-1",
            "organization_id": "org-1",
        })

        assert request.session_id == "guest-1"

    @pytest.mark.parametrize("message", ["", "x" * 1001])
    def test_message_length(self, message):
        with pytest.raises(ValidationError):
            validate_chat_message({
                "message": message,
                "session_id": "guest-1",
                "organization_id": "org-1",
            })

    def test_missing_session(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_chat_message({"message": "Hi", "organization_id": "org-1"})

        assert fields(exc_info) == {"session_id"}
