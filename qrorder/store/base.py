"""
Store Gateway Abstract Base Class

Defines the persistence contract the ordering services depend on. Every
method is a single-row (or single-query) atomic operation; multi-step
workflows and their consistency rules live in the services, not here.

Design Pattern: Repository / Strategy
    - Services stay storage-agnostic
    - Tests can swap in any implementation

Author: Khalil Bannouri
Version: 4.0.0
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from qrorder.models import (
    AIConversation,
    AnalyticsEvent,
    MenuCategory,
    MenuItem,
    Order,
    OrderStatus,
    Organization,
    OrganizationSettings,
    RestaurantTable,
    TableCall,
    TableStatus,
    WebhookConfig,
)


class BaseStore(ABC):
    """
    Abstract persistence gateway.

    Implementations raise ``StoreError`` on any backend failure and return
    ``None`` (never raise) when a looked-up row does not exist.
    """

    # =========================================================================
    # TENANTS & MENU
    # =========================================================================

    @abstractmethod
    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        pass

    @abstractmethod
    async def get_organization_settings(
        self,
        organization_id: str,
    ) -> Optional[OrganizationSettings]:
        pass

    @abstractmethod
    async def get_menu(
        self,
        organization_id: str,
    ) -> tuple[list[MenuCategory], list[MenuItem]]:
        """Return visible categories and available items, in display order."""
        pass

    # =========================================================================
    # TABLES
    # =========================================================================

    @abstractmethod
    async def get_table(self, table_id: str) -> Optional[RestaurantTable]:
        pass

    @abstractmethod
    async def update_table_status(self, table_id: str, status: TableStatus) -> bool:
        """Set a table's status. Returns False when the table does not exist."""
        pass

    @abstractmethod
    async def count_active_orders_for_table(
        self,
        table_id: str,
        exclude_order_id: Optional[str] = None,
    ) -> int:
        """Count non-terminal orders that reference a table."""
        pass

    # =========================================================================
    # ORDERS
    # =========================================================================

    @abstractmethod
    async def insert_order(self, values: dict[str, Any]) -> Order:
        pass

    @abstractmethod
    async def get_order(
        self,
        order_id: str,
        with_relations: bool = False,
    ) -> Optional[Order]:
        """Fetch an order; ``with_relations`` also loads table and organization."""
        pass

    @abstractmethod
    async def list_orders(
        self,
        session_id: Optional[str] = None,
        organization_id: Optional[str] = None,
    ) -> list[Order]:
        """Orders matching every given filter, newest first, with table loaded."""
        pass

    @abstractmethod
    async def update_order_status(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        updated_at: datetime,
    ) -> Optional[Order]:
        """
        Compare-and-set the order status.

        Returns:
            The updated order, or None when no row had ``expected_status``
            (missing order or concurrent change)
        """
        pass

    # =========================================================================
    # TABLE CALLS & ANALYTICS
    # =========================================================================

    @abstractmethod
    async def insert_table_call(self, values: dict[str, Any]) -> TableCall:
        pass

    @abstractmethod
    async def list_table_calls(
        self,
        organization_id: str,
        status: Optional[str] = None,
    ) -> list[TableCall]:
        pass

    @abstractmethod
    async def insert_analytics_event(self, values: dict[str, Any]) -> AnalyticsEvent:
        pass

    # =========================================================================
    # WEBHOOKS
    # =========================================================================

    @abstractmethod
    async def list_webhook_configs(
        self,
        organization_id: str,
        event_type: str,
    ) -> list[WebhookConfig]:
        """Active configurations of a tenant subscribed to ``event_type``."""
        pass

    @abstractmethod
    async def get_webhook_config(self, config_id: str) -> Optional[WebhookConfig]:
        pass

    # =========================================================================
    # AI CONVERSATIONS
    # =========================================================================

    @abstractmethod
    async def get_conversation(
        self,
        organization_id: str,
        session_id: str,
    ) -> Optional[AIConversation]:
        pass

    @abstractmethod
    async def upsert_conversation(
        self,
        organization_id: str,
        session_id: str,
        messages: list[dict[str, Any]],
    ) -> AIConversation:
        """Insert or replace the history of a session (last write wins)."""
        pass

    # =========================================================================
    # DASHBOARD
    # =========================================================================

    @abstractmethod
    async def order_summary(
        self,
        organization_id: str,
        since: datetime,
    ) -> dict[str, Any]:
        """Aggregate counts for the staff dashboard."""
        pass
