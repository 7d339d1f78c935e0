"""
Core module initialization.
Exports configuration, logging utilities and domain exceptions.
"""

from qrorder.core.config import get_settings, setup_logging, Settings, EnvironmentMode
from qrorder.core.exceptions import (
    QROrderError,
    ValidationError,
    NotFound,
    InvalidTransition,
    UpstreamUnavailable,
    StoreError,
    DeliveryFailure,
)

__all__ = [
    "get_settings",
    "setup_logging",
    "Settings",
    "EnvironmentMode",
    "QROrderError",
    "ValidationError",
    "NotFound",
    "InvalidTransition",
    "UpstreamUnavailable",
    "StoreError",
    "DeliveryFailure",
]
