"""
Order Lifecycle Service

Owns order creation and status transitions:

    pending -> preparing -> ready -> served -> paid (TRACK_PAYMENTS only)
       |           |           |
       +-----------+-----------+--> cancelled

served, cancelled and paid are terminal. Only the edges above are legal.

Each operation writes the order row first; that write is the only step that
can fail the request. Table occupancy, analytics and webhooks follow as
best-effort side effects and are logged when they fail.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from qrorder.core.config import Settings, get_settings
from qrorder.core.exceptions import (
    InvalidTransition,
    NotFound,
    StoreError,
    ValidationError,
)
from qrorder.models import (
    AnalyticsEventType,
    Order,
    OrderStatus,
    RestaurantTable,
    TableStatus,
    TERMINAL_ORDER_STATUSES,
    new_id,
    utcnow,
)
from qrorder.schemas import OrderCreate, OrderResponse
from qrorder.services.analytics import AnalyticsRecorder
from qrorder.services.order_numbers import generate_order_number
from qrorder.services.webhooks.dispatcher import WebhookDispatcher
from qrorder.store.base import BaseStore

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.SERVED, OrderStatus.CANCELLED}),
    OrderStatus.SERVED: frozenset({OrderStatus.PAID}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.PAID: frozenset(),
}

# Tables in these states are managed by staff, not by order activity
PROJECTED_TABLE_STATUSES = (TableStatus.AVAILABLE, TableStatus.OCCUPIED)

EVENT_ORDER_CREATED = "order.created"
EVENT_ORDER_UPDATED = "order.updated"
EVENT_ORDER_COMPLETED = "order.completed"


def is_transition_allowed(
    current: OrderStatus,
    new: OrderStatus,
    track_payments: bool = False,
) -> bool:
    if new == OrderStatus.PAID and not track_payments:
        return False
    return new in ALLOWED_TRANSITIONS.get(current, frozenset())


def calculate_total(items: list) -> float:
    """Sum of price x quantity, rounded to cents."""
    return round(sum(item.line_total for item in items), 2)


@dataclass
class StatusUpdateResult:
    order: Order
    previous_status: OrderStatus
    changed: bool


class OrderService:
    """
    Order lifecycle manager.

    Example:
        >>> service = OrderService(store, dispatcher)
        >>> order = await service.create_order(validate_order_request(body))
        >>> await service.update_status(order.id, "preparing")
    """

    def __init__(
        self,
        store: BaseStore,
        dispatcher: WebhookDispatcher,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()
        self.analytics = AnalyticsRecorder(store)

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_order(self, order_id: str) -> Order:
        order = await self.store.get_order(order_id, with_relations=True)
        if order is None:
            raise NotFound("Order", order_id)
        return order

    async def list_orders(
        self,
        session_id: Optional[str] = None,
        organization_id: Optional[str] = None,
    ) -> list[Order]:
        if not session_id and not organization_id:
            raise ValidationError(
                "session_id or organization_id is required",
                errors=[{"field": "query", "message": "session_id or organization_id is required"}],
            )
        return await self.store.list_orders(session_id=session_id, organization_id=organization_id)

    async def summary(self, organization_id: str) -> dict[str, Any]:
        if await self.store.get_organization(organization_id) is None:
            raise NotFound("Organization", organization_id)
        today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        summary = await self.store.order_summary(organization_id, since=today)
        return {"organization_id": organization_id, **summary}

    # =========================================================================
    # CREATE
    # =========================================================================

    async def create_order(self, request: OrderCreate) -> Order:
        """
        Create a pending order.

        Raises:
            NotFound: table_id or organization_id does not resolve
            StoreError: the order row could not be written
        """
        table: Optional[RestaurantTable] = None

        if request.table_id:
            table = await self.store.get_table(request.table_id)
            if table is None:
                raise NotFound("Table", request.table_id)
            organization_id = table.organization_id
            if request.organization_id and request.organization_id != organization_id:
                logger.warning(
                    f"Order for table {table.id} names organization "
                    f"{request.organization_id}; using table owner {organization_id}"
                )
        else:
            organization = await self.store.get_organization(request.organization_id)
            if organization is None:
                raise NotFound("Organization", request.organization_id)
            organization_id = organization.id

        now = utcnow()
        total_amount = calculate_total(request.items)
        session_id = request.session_id or f"session_{int(time.time() * 1000)}"

        order = await self.store.insert_order({
            "id": new_id(),
            "organization_id": organization_id,
            "table_id": table.id if table else None,
            "order_number": generate_order_number(self.settings.order_number_prefix, now),
            "items": [item.model_dump(exclude_none=True) for item in request.items],
            "total_amount": total_amount,
            "status": OrderStatus.PENDING,
            "customer_name": request.customer_name or None,
            "customer_notes": request.customer_notes or None,
            "session_id": session_id,
            "created_at": now,
            "updated_at": now,
        })

        logger.info(
            f"Order {order.order_number} created for organization {organization_id} "
            f"({len(request.items)} items, total {total_amount:.2f})"
        )

        # Reserved and disabled tables keep the status staff gave them
        if table is not None and table.status == TableStatus.AVAILABLE:
            await self._set_table_status(table.id, TableStatus.OCCUPIED)

        await self.analytics.record(
            organization_id,
            AnalyticsEventType.ORDER_CREATED,
            {
                "order_id": order.id,
                "items_count": len(request.items),
                "total_amount": total_amount,
            },
            session_id=session_id,
        )

        self._notify(
            order,
            EVENT_ORDER_CREATED,
            {
                "table_number": table.table_number if table else None,
                "customer_name": request.customer_name or None,
                "items_count": len(request.items),
            },
        )

        return order

    # =========================================================================
    # STATUS TRANSITIONS
    # =========================================================================

    def parse_status(self, raw_status: Any) -> OrderStatus:
        accepted = [s for s in OrderStatus if s != OrderStatus.PAID or self.settings.track_payments]
        try:
            status = OrderStatus(raw_status)
        except ValueError:
            status = None

        if status not in accepted:
            raise ValidationError(
                "Invalid status",
                errors=[{
                    "field": "status",
                    "message": f"Must be one of: {[s.value for s in accepted]}",
                }],
            )
        return status

    async def update_status(self, order_id: str, raw_status: Any) -> StatusUpdateResult:
        """
        Move an order to a new status.

        Re-sending the current status is a successful no-op without
        analytics or webhooks, so client retries are safe.

        Raises:
            ValidationError: unrecognized status
            NotFound: order does not exist
            InvalidTransition: edge not allowed, or the order changed concurrently
        """
        new_status = self.parse_status(raw_status)

        order = await self.store.get_order(order_id)
        if order is None:
            raise NotFound("Order", order_id)

        previous_status = order.status
        if previous_status == new_status:
            logger.info(f"Order {order.order_number} already {new_status.value}; nothing to do")
            return StatusUpdateResult(order=order, previous_status=previous_status, changed=False)

        if not is_transition_allowed(previous_status, new_status, self.settings.track_payments):
            raise InvalidTransition(previous_status.value, new_status.value)

        updated = await self.store.update_order_status(
            order_id,
            expected_status=previous_status,
            new_status=new_status,
            updated_at=utcnow(),
        )

        if updated is None:
            current = await self.store.get_order(order_id)
            if current is None:
                raise NotFound("Order", order_id)
            if current.status == new_status:
                return StatusUpdateResult(order=current, previous_status=new_status, changed=False)
            raise InvalidTransition(
                previous_status.value,
                new_status.value,
                reason=(
                    f"Order status changed concurrently to '{current.status.value}'; "
                    f"reload and retry"
                ),
            )

        logger.info(
            f"Order {updated.order_number}: {previous_status.value} -> {new_status.value}"
        )

        table_number = None
        if updated.table_id:
            if new_status in TERMINAL_ORDER_STATUSES:
                table_number = await self._sync_table_occupancy(updated.table_id, updated.id)
            else:
                table_number = await self._table_number(updated.table_id)

        await self.analytics.record(
            updated.organization_id,
            AnalyticsEventType.ORDER_STATUS_UPDATED,
            {
                "order_id": updated.id,
                "previous_status": previous_status.value,
                "new_status": new_status.value,
            },
            session_id=updated.session_id,
        )

        event = EVENT_ORDER_COMPLETED if new_status == OrderStatus.SERVED else EVENT_ORDER_UPDATED
        self._notify(
            updated,
            event,
            {
                "previous_status": previous_status.value,
                "new_status": new_status.value,
                "table_number": table_number,
            },
        )

        return StatusUpdateResult(order=updated, previous_status=previous_status, changed=True)

    # =========================================================================
    # SIDE EFFECTS
    # =========================================================================

    async def _set_table_status(self, table_id: str, status: TableStatus) -> None:
        try:
            await self.store.update_table_status(table_id, status)
        except StoreError as e:
            logger.error(f"Could not set table {table_id} to {status.value}: {e}")

    async def _table_number(self, table_id: str) -> Optional[str]:
        try:
            table = await self.store.get_table(table_id)
        except StoreError as e:
            logger.warning(f"Could not load table {table_id}: {e}")
            return None
        return table.table_number if table else None

    async def _sync_table_occupancy(self, table_id: str, order_id: str) -> Optional[str]:
        """
        Recompute a table's occupancy from its non-terminal orders.

        Occupied while any other active order references the table,
        available otherwise. Reserved and disabled tables are left alone.

        Returns:
            The table number, for webhook context
        """
        try:
            table = await self.store.get_table(table_id)
            if table is None:
                logger.warning(f"Order {order_id} references missing table {table_id}")
                return None

            if table.status not in PROJECTED_TABLE_STATUSES:
                return table.table_number

            active = await self.store.count_active_orders_for_table(
                table_id, exclude_order_id=order_id
            )
            target = TableStatus.OCCUPIED if active else TableStatus.AVAILABLE
            if table.status != target:
                await self.store.update_table_status(table_id, target)
                logger.info(
                    f"Table {table.table_number} -> {target.value} "
                    f"({active} other active order(s))"
                )
            return table.table_number

        except StoreError as e:
            logger.error(f"Could not sync occupancy of table {table_id}: {e}")
            return None

    def _notify(self, order: Order, event_type: str, context: dict[str, Any]) -> None:
        try:
            payload = OrderResponse.model_validate(order).model_dump(mode="json")
            self.dispatcher.dispatch(
                order.organization_id,
                event_type,
                order.id,
                payload,
                context,
            )
        except Exception as e:
            logger.error(f"Could not queue {event_type} webhook for order {order.id}: {e}")
