"""Tests for order number generation."""

import re
from datetime import datetime, timezone

from qrorder.services.order_numbers import ALPHABET, generate_order_number

PATTERN = re.compile(r"^ORD-\d{6}-\d{6}-[0-9A-HJKMNP-TV-Z]{4}$")


def test_format():
    now = datetime(2024, 1, 15, 18, 30, 45, tzinfo=timezone.utc)

    number = generate_order_number(now=now)

    assert number.startswith("ORD-240115-183045-")
    assert PATTERN.match(number)


def test_prefix():
    assert generate_order_number("T9").startswith("T9-")


def test_suffix_avoids_ambiguous_symbols():
    assert not set("ILOU") & set(ALPHABET)
    assert len(set(ALPHABET)) == 32


def test_numbers_in_same_second_differ():
    now = datetime(2024, 1, 15, 18, 30, 45, tzinfo=timezone.utc)

    numbers = {generate_order_number(now=now) for _ in range(50)}

    assert len(numbers) > 40
