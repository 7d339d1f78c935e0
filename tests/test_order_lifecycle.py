"""Tests for order creation, status transitions and table occupancy."""

import pytest

from qrorder.core.exceptions import InvalidTransition, NotFound, StoreError, ValidationError
from qrorder.models import AnalyticsEvent, OrderStatus, TableStatus
from qrorder.schemas import OrderCreate
from qrorder.services.orders import (
    ALLOWED_TRANSITIONS,
    OrderService,
    calculate_total,
    is_transition_allowed,
)
from sqlalchemy import select


def order_request(table_id=None, organization_id=None, **extra) -> OrderCreate:
    return OrderCreate(
        items=[
            {"name": "Ribeye", "price": 50.0, "quantity": 2},
            {"name": "Tiramisu", "price": 30.0, "quantity": 1},
        ],
        table_id=table_id,
        organization_id=organization_id,
        **extra,
    )


async def table_status(store, table_id) -> TableStatus:
    table = await store.get_table(table_id)
    return table.status


async def analytics_events(db_session) -> list[AnalyticsEvent]:
    result = await db_session.execute(select(AnalyticsEvent).order_by(AnalyticsEvent.created_at))
    return list(result.scalars().all())


class TestTransitionTable:
    """Legal edges of the order state machine."""

    @pytest.mark.parametrize(
        "current,new",
        [
            (OrderStatus.PENDING, OrderStatus.PREPARING),
            (OrderStatus.PREPARING, OrderStatus.READY),
            (OrderStatus.READY, OrderStatus.SERVED),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.PREPARING, OrderStatus.CANCELLED),
            (OrderStatus.READY, OrderStatus.CANCELLED),
        ],
    )
    def test_allowed_edges(self, current, new):
        assert is_transition_allowed(current, new)

    @pytest.mark.parametrize(
        "current,new",
        [
            (OrderStatus.SERVED, OrderStatus.CANCELLED),
            (OrderStatus.CANCELLED, OrderStatus.PENDING),
            (OrderStatus.READY, OrderStatus.PENDING),
            (OrderStatus.PENDING, OrderStatus.READY),
            (OrderStatus.PENDING, OrderStatus.SERVED),
        ],
    )
    def test_rejected_edges(self, current, new):
        assert not is_transition_allowed(current, new)

    def test_paid_requires_payment_tracking(self):
        assert not is_transition_allowed(OrderStatus.SERVED, OrderStatus.PAID)
        assert is_transition_allowed(OrderStatus.SERVED, OrderStatus.PAID, track_payments=True)

    def test_terminal_states_have_no_exits(self):
        assert ALLOWED_TRANSITIONS[OrderStatus.CANCELLED] == frozenset()
        assert ALLOWED_TRANSITIONS[OrderStatus.PAID] == frozenset()


class TestCreateOrder:

    async def test_total_is_sum_of_lines(self, order_service, seed):
        order = await order_service.create_order(order_request(table_id=seed.table.id))

        assert order.total_amount == 130.0
        assert order.status == OrderStatus.PENDING
        assert order.organization_id == seed.organization.id

    def test_total_rounds_to_cents(self):
        request = OrderCreate(
            organization_id="org",
            items=[{"name": "Espresso", "price": 0.1, "quantity": 3}],
        )
        assert calculate_total(request.items) == 0.3

    async def test_marks_table_occupied(self, order_service, store, seed):
        await order_service.create_order(order_request(table_id=seed.table.id))

        assert await table_status(store, seed.table.id) == TableStatus.OCCUPIED

    async def test_order_on_reserved_table_keeps_reserved_status(self, order_service, store, seed):
        order = await order_service.create_order(order_request(table_id=seed.reserved_table.id))

        assert order.status == OrderStatus.PENDING
        assert await table_status(store, seed.reserved_table.id) == TableStatus.RESERVED

    async def test_order_on_disabled_table_keeps_disabled_status(self, order_service, store, seed):
        await store.update_table_status(seed.second_table.id, TableStatus.DISABLED)

        order = await order_service.create_order(order_request(table_id=seed.second_table.id))

        assert order.status == OrderStatus.PENDING
        assert await table_status(store, seed.second_table.id) == TableStatus.DISABLED

    async def test_table_owner_wins_over_given_organization(self, order_service, seed):
        order = await order_service.create_order(
            order_request(table_id=seed.table.id, organization_id=seed.other_organization.id)
        )
        assert order.organization_id == seed.organization.id

    async def test_unknown_table(self, order_service, seed):
        with pytest.raises(NotFound):
            await order_service.create_order(order_request(table_id="missing-table"))

    async def test_unknown_organization(self, order_service, seed):
        with pytest.raises(NotFound):
            await order_service.create_order(order_request(organization_id="missing-org"))

    async def test_without_table(self, order_service, seed):
        order = await order_service.create_order(
            order_request(organization_id=seed.organization.id)
        )
        assert order.table_id is None

    async def test_session_defaults(self, order_service, seed):
        order = await order_service.create_order(order_request(table_id=seed.table.id))
        assert order.session_id.startswith("session_")

        explicit = await order_service.create_order(
            order_request(table_id=seed.table.id, session_id="guest-42")
        )
        assert explicit.session_id == "guest-42"

    async def test_records_analytics_and_webhook(self, order_service, dispatcher, db_session, seed):
        order = await order_service.create_order(
            order_request(table_id=seed.table.id, customer_name="Ana")
        )

        events = await analytics_events(db_session)
        assert [e.event_type for e in events] == ["order_created"]
        assert events[0].event_data == {
            "order_id": order.id,
            "items_count": 2,
            "total_amount": 130.0,
        }

        assert dispatcher.event_types == ["order.created"]
        job = dispatcher.jobs[0]
        assert job.resource_id == order.id
        assert job.resource_payload["total_amount"] == 130.0
        assert job.context == {"table_number": "T1", "customer_name": "Ana", "items_count": 2}

    async def test_table_update_failure_keeps_order(self, order_service, store, seed, monkeypatch):
        async def broken(*args, **kwargs):
            raise StoreError("Store operation 'update_table_status' failed")

        monkeypatch.setattr(store, "update_table_status", broken)

        order = await order_service.create_order(order_request(table_id=seed.table.id))

        assert await store.get_order(order.id) is not None

    async def test_analytics_failure_keeps_order(self, order_service, store, dispatcher, seed, monkeypatch):
        async def broken(*args, **kwargs):
            raise StoreError("Store operation 'insert_analytics_event' failed")

        monkeypatch.setattr(store, "insert_analytics_event", broken)

        order = await order_service.create_order(order_request(table_id=seed.table.id))

        assert await store.get_order(order.id) is not None
        assert dispatcher.event_types == ["order.created"]

    async def test_dispatch_failure_keeps_order(self, order_service, store, seed, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("queue gone")

        monkeypatch.setattr(order_service.dispatcher, "dispatch", broken)

        order = await order_service.create_order(order_request(table_id=seed.table.id))

        assert await store.get_order(order.id) is not None


class TestUpdateStatus:

    async def test_full_service_scenario(self, order_service, store, dispatcher, seed):
        order = await order_service.create_order(order_request(table_id=seed.table.id))
        assert order.total_amount == 130.0
        assert await table_status(store, seed.table.id) == TableStatus.OCCUPIED

        for status in ("preparing", "ready", "served"):
            result = await order_service.update_status(order.id, status)
            assert result.changed
            assert result.order.status.value == status

        assert await table_status(store, seed.table.id) == TableStatus.AVAILABLE
        assert dispatcher.event_types == [
            "order.created",
            "order.updated",
            "order.updated",
            "order.completed",
        ]
        assert dispatcher.jobs[-1].context == {
            "previous_status": "ready",
            "new_status": "served",
            "table_number": "T1",
        }

    async def test_served_cannot_be_cancelled(self, order_service, store, seed):
        order = await order_service.create_order(order_request(table_id=seed.table.id))
        for status in ("preparing", "ready", "served"):
            await order_service.update_status(order.id, status)

        with pytest.raises(InvalidTransition):
            await order_service.update_status(order.id, "cancelled")

        current = await store.get_order(order.id)
        assert current.status == OrderStatus.SERVED

    async def test_skipping_steps_is_rejected(self, order_service, seed):
        order = await order_service.create_order(order_request(table_id=seed.table.id))

        with pytest.raises(InvalidTransition):
            await order_service.update_status(order.id, "ready")

    async def test_unknown_status(self, order_service, seed):
        order = await order_service.create_order(order_request(table_id=seed.table.id))

        with pytest.raises(ValidationError):
            await order_service.update_status(order.id, "delivered")

    async def test_paid_rejected_without_payment_tracking(self, order_service, seed):
        order = await order_service.create_order(order_request(table_id=seed.table.id))

        with pytest.raises(ValidationError):
            await order_service.update_status(order.id, "paid")

    async def test_paid_after_served_with_payment_tracking(self, store, dispatcher, test_settings, seed):
        settings = test_settings.model_copy(update={"track_payments": True})
        service = OrderService(store, dispatcher, settings=settings)
        order = await service.create_order(order_request(table_id=seed.table.id))
        for status in ("preparing", "ready", "served", "paid"):
            await service.update_status(order.id, status)

        assert (await store.get_order(order.id)).status == OrderStatus.PAID
        assert dispatcher.event_types[-1] == "order.updated"

    async def test_missing_order(self, order_service, seed):
        with pytest.raises(NotFound):
            await order_service.update_status("missing-order", "preparing")

    async def test_same_status_is_a_no_op(self, order_service, dispatcher, db_session, seed):
        order = await order_service.create_order(order_request(table_id=seed.table.id))
        await order_service.update_status(order.id, "preparing")

        result = await order_service.update_status(order.id, "preparing")

        assert not result.changed
        assert result.order.status == OrderStatus.PREPARING
        assert dispatcher.event_types == ["order.created", "order.updated"]
        assert len(await analytics_events(db_session)) == 2

    async def test_terminal_status_is_idempotent(self, order_service, dispatcher, seed):
        order = await order_service.create_order(order_request(table_id=seed.table.id))
        await order_service.update_status(order.id, "cancelled")

        result = await order_service.update_status(order.id, "cancelled")

        assert not result.changed
        assert dispatcher.event_types == ["order.created", "order.updated"]

    async def test_concurrent_change_is_rejected(self, order_service, store, seed, monkeypatch):
        order = await order_service.create_order(order_request(table_id=seed.table.id))
        original = store.update_order_status

        async def racing(order_id, expected_status, new_status, updated_at):
            # Another request cancels the order between the read and the write
            await original(order_id, expected_status, OrderStatus.CANCELLED, updated_at)
            return await original(order_id, expected_status, new_status, updated_at)

        monkeypatch.setattr(store, "update_order_status", racing)

        with pytest.raises(InvalidTransition):
            await order_service.update_status(order.id, "preparing")

        assert (await store.get_order(order.id)).status == OrderStatus.CANCELLED

    async def test_status_analytics(self, order_service, db_session, seed):
        order = await order_service.create_order(order_request(table_id=seed.table.id))
        await order_service.update_status(order.id, "preparing")

        events = await analytics_events(db_session)
        assert events[-1].event_type == "order_status_updated"
        assert events[-1].event_data == {
            "order_id": order.id,
            "previous_status": "pending",
            "new_status": "preparing",
        }


class TestTableOccupancy:

    async def test_sibling_order_keeps_table_occupied(self, order_service, store, seed):
        first = await order_service.create_order(order_request(table_id=seed.table.id))
        second = await order_service.create_order(order_request(table_id=seed.table.id))

        await order_service.update_status(first.id, "cancelled")
        assert await table_status(store, seed.table.id) == TableStatus.OCCUPIED

        await order_service.update_status(second.id, "cancelled")
        assert await table_status(store, seed.table.id) == TableStatus.AVAILABLE

    async def test_orders_on_other_tables_do_not_count(self, order_service, store, seed):
        first = await order_service.create_order(order_request(table_id=seed.table.id))
        await order_service.create_order(order_request(table_id=seed.second_table.id))

        await order_service.update_status(first.id, "cancelled")

        assert await table_status(store, seed.table.id) == TableStatus.AVAILABLE
        assert await table_status(store, seed.second_table.id) == TableStatus.OCCUPIED

    async def test_stale_occupied_flag_heals(self, order_service, store, seed):
        order = await order_service.create_order(order_request(table_id=seed.table.id))
        await order_service.update_status(order.id, "cancelled")
        # Flag left behind by an earlier failed side effect
        await store.update_table_status(seed.table.id, TableStatus.OCCUPIED)

        other = await order_service.create_order(order_request(table_id=seed.table.id))
        await order_service.update_status(other.id, "cancelled")

        assert await table_status(store, seed.table.id) == TableStatus.AVAILABLE

    async def test_staff_managed_tables_are_left_alone(self, order_service, store, seed):
        order = await order_service.create_order(order_request(table_id=seed.table.id))
        await store.update_table_status(seed.table.id, TableStatus.DISABLED)

        await order_service.update_status(order.id, "cancelled")

        assert await table_status(store, seed.table.id) == TableStatus.DISABLED


class TestQueries:

    async def test_list_requires_a_filter(self, order_service):
        with pytest.raises(ValidationError):
            await order_service.list_orders()

    async def test_list_by_session(self, order_service, seed):
        mine = await order_service.create_order(
            order_request(table_id=seed.table.id, session_id="guest-1")
        )
        await order_service.create_order(order_request(table_id=seed.table.id, session_id="guest-2"))

        orders = await order_service.list_orders(session_id="guest-1")

        assert [o.id for o in orders] == [mine.id]

    async def test_list_is_tenant_scoped(self, order_service, seed):
        await order_service.create_order(order_request(table_id=seed.table.id))
        await order_service.create_order(order_request(table_id=seed.other_table.id))

        orders = await order_service.list_orders(organization_id=seed.other_organization.id)

        assert len(orders) == 1
        assert orders[0].organization_id == seed.other_organization.id

    async def test_get_order_loads_display_relations(self, order_service, seed):
        created = await order_service.create_order(order_request(table_id=seed.table.id))

        order = await order_service.get_order(created.id)

        assert order.table.table_number == "T1"
        assert order.organization.name == "Trattoria Roma"

    async def test_summary(self, order_service, seed):
        first = await order_service.create_order(order_request(table_id=seed.table.id))
        await order_service.create_order(order_request(table_id=seed.second_table.id))
        await order_service.update_status(first.id, "cancelled")

        summary = await order_service.summary(seed.organization.id)

        assert summary["total_orders"] == 2
        assert summary["active_orders"] == 1
        assert summary["today_orders"] == 1
        assert summary["today_revenue"] == 130.0
        assert summary["occupied_tables"] == 1
        assert summary["total_tables"] == 3

    async def test_summary_unknown_organization(self, order_service):
        with pytest.raises(NotFound):
            await order_service.summary("missing-org")
