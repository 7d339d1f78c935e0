"""
Table Call Service

Customers press "call waiter" on the table page; staff see pending calls
on the dashboard.

Author: Khalil Bannouri
Version: 4.0.0
"""

import logging
from typing import Optional

from qrorder.core.exceptions import ValidationError
from qrorder.models import AnalyticsEventType, TableCall, new_id, utcnow
from qrorder.schemas import TableCallCreate
from qrorder.services.analytics import AnalyticsRecorder
from qrorder.store.base import BaseStore

logger = logging.getLogger(__name__)


class TableCallService:

    def __init__(self, store: BaseStore):
        self.store = store
        self.analytics = AnalyticsRecorder(store)

    async def create_call(self, request: TableCallCreate) -> TableCall:
        """
        Record a pending call for a table of the given organization.

        Raises:
            ValidationError: table does not exist or belongs to another tenant
        """
        table = await self.store.get_table(request.table_id)
        if table is None or table.organization_id != request.organization_id:
            raise ValidationError(
                "Invalid request data",
                errors=[{
                    "field": "table_id",
                    "message": "Table does not belong to this organization",
                }],
            )

        call = await self.store.insert_table_call({
            "id": new_id(),
            "organization_id": request.organization_id,
            "table_id": request.table_id,
            "call_type": request.call_type,
            "customer_note": request.customer_note or None,
            "status": "pending",
            "created_at": utcnow(),
        })

        logger.info(
            f"Table call ({request.call_type}) at table {table.table_number} "
            f"for organization {request.organization_id}"
        )

        await self.analytics.record(
            request.organization_id,
            AnalyticsEventType.TABLE_CALL_REQUESTED,
            {"table_id": request.table_id, "call_type": request.call_type},
        )
        return call

    async def list_calls(
        self,
        organization_id: Optional[str],
        status: Optional[str] = None,
    ) -> list[TableCall]:
        if not organization_id:
            raise ValidationError(
                "organization_id is required",
                errors=[{"field": "organization_id", "message": "Field required"}],
            )
        return await self.store.list_table_calls(organization_id, status=status)
