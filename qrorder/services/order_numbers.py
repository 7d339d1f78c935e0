"""
Order Number Generator

Produces short, time-ordered tokens for kitchen tickets and receipts:

    ORD-240115-183045-K7Q2

UTC date and time to the second, then four random Crockford base32
symbols. That gives 32**4 (~1M) suffixes per second, so no cross-tenant
sequence is needed.
"""

import secrets
from datetime import datetime, timezone
from typing import Optional

# Crockford base32: no I, L, O or U
ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
SUFFIX_LENGTH = 4


def generate_order_number(
    prefix: str = "ORD",
    now: Optional[datetime] = None,
) -> str:
    """
    Generate a human-legible order number.

    Args:
        prefix: Leading tag, e.g. "ORD"
        now: Timestamp to embed (defaults to current UTC time)

    Returns:
        str: e.g. "ORD-240115-183045-K7Q2"
    """
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{prefix}-{now:%y%m%d}-{now:%H%M%S}-{suffix}"
