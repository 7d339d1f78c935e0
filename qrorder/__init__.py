"""
                QR Table Ordering

Multi-tenant backend for QR-code table ordering: guests scan a table code,
browse the menu, chat with a menu assistant and place orders; staff move
orders through the kitchen workflow and receive signed webhooks.

Author: Khalil_Bannouri
Version: 4.0.0
License: MIT
"""

__version__ = "4.0.0"
__author__ = "Khalil_Bannouri"
