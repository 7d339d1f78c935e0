"""
SQLAlchemy Store Implementation

Async SQLAlchemy implementation of ``BaseStore``. One instance wraps one
``AsyncSession``; every write commits on its own so that a failed side effect
never rolls back an order that was already persisted.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from qrorder.core.exceptions import StoreError
from qrorder.models import (
    ACTIVE_ORDER_STATUSES,
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
    utcnow,
)
from qrorder.store.base import BaseStore

logger = logging.getLogger(__name__)


class SQLAlchemyStore(BaseStore):
    """
    Store gateway backed by an async SQLAlchemy session.

    Example:
        >>> async with async_session_maker() as session:
        ...     store = SQLAlchemyStore(session)
        ...     order = await store.get_order(order_id)
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def _guard(self, operation: str, commit: bool = False) -> AsyncIterator[None]:
        """Translate backend errors to StoreError, rolling back the session."""
        try:
            yield
            if commit:
                await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Store operation '{operation}' failed: {e}")
            raise StoreError(f"Store operation '{operation}' failed") from e

    # =========================================================================
    # TENANTS & MENU
    # =========================================================================

    async def get_organization(self, organization_id: str) -> Optional[Organization]:
        async with self._guard("get_organization"):
            return await self.session.get(Organization, organization_id)

    async def get_organization_settings(
        self,
        organization_id: str,
    ) -> Optional[OrganizationSettings]:
        async with self._guard("get_organization_settings"):
            result = await self.session.execute(
                select(OrganizationSettings).where(
                    OrganizationSettings.organization_id == organization_id
                )
            )
            return result.scalar_one_or_none()

    async def get_menu(
        self,
        organization_id: str,
    ) -> tuple[list[MenuCategory], list[MenuItem]]:
        async with self._guard("get_menu"):
            categories = await self.session.execute(
                select(MenuCategory)
                .where(
                    MenuCategory.organization_id == organization_id,
                    MenuCategory.visible.is_(True),
                )
                .order_by(MenuCategory.display_order, MenuCategory.name)
            )
            items = await self.session.execute(
                select(MenuItem)
                .where(
                    MenuItem.organization_id == organization_id,
                    MenuItem.available.is_(True),
                )
                .order_by(MenuItem.display_order, MenuItem.name)
            )
            return list(categories.scalars().all()), list(items.scalars().all())

    # =========================================================================
    # TABLES
    # =========================================================================

    async def get_table(self, table_id: str) -> Optional[RestaurantTable]:
        async with self._guard("get_table"):
            result = await self.session.execute(
                select(RestaurantTable)
                .where(RestaurantTable.id == table_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def update_table_status(self, table_id: str, status: TableStatus) -> bool:
        async with self._guard("update_table_status", commit=True):
            result = await self.session.execute(
                update(RestaurantTable)
                .where(RestaurantTable.id == table_id)
                .values(status=status, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
        return result.rowcount > 0

    async def count_active_orders_for_table(
        self,
        table_id: str,
        exclude_order_id: Optional[str] = None,
    ) -> int:
        query = select(func.count(Order.id)).where(
            Order.table_id == table_id,
            Order.status.in_(ACTIVE_ORDER_STATUSES),
        )
        if exclude_order_id:
            query = query.where(Order.id != exclude_order_id)

        async with self._guard("count_active_orders_for_table"):
            result = await self.session.execute(query)
            return result.scalar() or 0

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def insert_order(self, values: dict[str, Any]) -> Order:
        order = Order(**values)
        async with self._guard("insert_order", commit=True):
            self.session.add(order)
        return order

    async def get_order(
        self,
        order_id: str,
        with_relations: bool = False,
    ) -> Optional[Order]:
        query = (
            select(Order)
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        if with_relations:
            query = query.options(
                selectinload(Order.table),
                selectinload(Order.organization),
            )

        async with self._guard("get_order"):
            result = await self.session.execute(query)
            return result.scalar_one_or_none()

    async def list_orders(
        self,
        session_id: Optional[str] = None,
        organization_id: Optional[str] = None,
    ) -> list[Order]:
        query = (
            select(Order)
            .options(selectinload(Order.table))
            .order_by(Order.created_at.desc())
        )
        if session_id:
            query = query.where(Order.session_id == session_id)
        if organization_id:
            query = query.where(Order.organization_id == organization_id)

        async with self._guard("list_orders"):
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def update_order_status(
        self,
        order_id: str,
        expected_status: OrderStatus,
        new_status: OrderStatus,
        updated_at: datetime,
    ) -> Optional[Order]:
        async with self._guard("update_order_status", commit=True):
            result = await self.session.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == expected_status)
                .values(status=new_status, updated_at=updated_at)
                .execution_options(synchronize_session=False)
            )

        if result.rowcount == 0:
            return None
        return await self.get_order(order_id)

    # =========================================================================
    # TABLE CALLS & ANALYTICS
    # =========================================================================

    async def insert_table_call(self, values: dict[str, Any]) -> TableCall:
        call = TableCall(**values)
        async with self._guard("insert_table_call", commit=True):
            self.session.add(call)

        async with self._guard("insert_table_call"):
            result = await self.session.execute(
                select(TableCall)
                .options(selectinload(TableCall.table))
                .where(TableCall.id == call.id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one()

    async def list_table_calls(
        self,
        organization_id: str,
        status: Optional[str] = None,
    ) -> list[TableCall]:
        query = (
            select(TableCall)
            .options(selectinload(TableCall.table))
            .where(TableCall.organization_id == organization_id)
            .order_by(TableCall.created_at.desc())
        )
        if status:
            query = query.where(TableCall.status == status)

        async with self._guard("list_table_calls"):
            result = await self.session.execute(query)
            return list(result.scalars().all())

    async def insert_analytics_event(self, values: dict[str, Any]) -> AnalyticsEvent:
        event = AnalyticsEvent(**values)
        async with self._guard("insert_analytics_event", commit=True):
            self.session.add(event)
        return event

    # =========================================================================
    # WEBHOOKS
    # =========================================================================

    async def list_webhook_configs(
        self,
        organization_id: str,
        event_type: str,
    ) -> list[WebhookConfig]:
        async with self._guard("list_webhook_configs"):
            result = await self.session.execute(
                select(WebhookConfig).where(
                    WebhookConfig.organization_id == organization_id,
                    WebhookConfig.is_active.is_(True),
                )
            )
            configs = result.scalars().all()

        # JSON containment differs between PostgreSQL and SQLite; filter here
        return [c for c in configs if event_type in (c.events or [])]

    async def get_webhook_config(self, config_id: str) -> Optional[WebhookConfig]:
        async with self._guard("get_webhook_config"):
            return await self.session.get(WebhookConfig, config_id)

    # =========================================================================
    # AI CONVERSATIONS
    # =========================================================================

    async def get_conversation(
        self,
        organization_id: str,
        session_id: str,
    ) -> Optional[AIConversation]:
        async with self._guard("get_conversation"):
            result = await self.session.execute(
                select(AIConversation)
                .where(
                    AIConversation.organization_id == organization_id,
                    AIConversation.session_id == session_id,
                )
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()

    async def upsert_conversation(
        self,
        organization_id: str,
        session_id: str,
        messages: list[dict[str, Any]],
    ) -> AIConversation:
        conversation = await self.get_conversation(organization_id, session_id)

        if conversation is None:
            conversation = AIConversation(
                organization_id=organization_id,
                session_id=session_id,
                messages=messages,
            )
            self.session.add(conversation)
            try:
                await self.session.commit()
                return conversation
            except IntegrityError:
                # Another request created the row first; overwrite it below
                await self.session.rollback()
                conversation = await self.get_conversation(organization_id, session_id)
                if conversation is None:
                    raise StoreError("Store operation 'upsert_conversation' failed")
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error(f"Store operation 'upsert_conversation' failed: {e}")
                raise StoreError("Store operation 'upsert_conversation' failed") from e

        async with self._guard("upsert_conversation", commit=True):
            conversation.messages = messages
            conversation.updated_at = utcnow()
        return conversation

    # =========================================================================
    # DASHBOARD
    # =========================================================================

    async def order_summary(
        self,
        organization_id: str,
        since: datetime,
    ) -> dict[str, Any]:
        by_org = Order.organization_id == organization_id

        async with self._guard("order_summary"):
            total = await self.session.execute(select(func.count(Order.id)).where(by_org))
            active = await self.session.execute(
                select(func.count(Order.id)).where(
                    by_org, Order.status.in_(ACTIVE_ORDER_STATUSES)
                )
            )
            today = await self.session.execute(
                select(func.count(Order.id), func.sum(Order.total_amount)).where(
                    by_org,
                    Order.created_at >= since,
                    Order.status != OrderStatus.CANCELLED,
                )
            )
            tables = await self.session.execute(
                select(RestaurantTable.status, func.count(RestaurantTable.id))
                .where(RestaurantTable.organization_id == organization_id)
                .group_by(RestaurantTable.status)
            )

            today_orders, today_revenue = today.one()
            table_counts = {status: count for status, count in tables.all()}

        return {
            "total_orders": total.scalar() or 0,
            "active_orders": active.scalar() or 0,
            "today_orders": today_orders or 0,
            "today_revenue": round(today_revenue or 0.0, 2),
            "occupied_tables": table_counts.get(TableStatus.OCCUPIED, 0),
            "total_tables": sum(table_counts.values()),
        }
