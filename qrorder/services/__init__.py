"""
                        Services Module

Business logic behind the HTTP routes. External integrations follow the
hybrid pattern: a Mock implementation for development and a Real one for
staging and production, chosen by a cached factory.

Services:
    - orders: order lifecycle and table occupancy
    - table_calls: "call waiter" requests
    - ai: menu assistant (Mock / OpenAI-compatible)
    - webhooks: signed tenant notifications (inline / Celery)
    - analytics: append-only tenant events
    - validation: request payload validation
"""

from qrorder.services.orders import OrderService
from qrorder.services.table_calls import TableCallService

__all__ = ["OrderService", "TableCallService"]
