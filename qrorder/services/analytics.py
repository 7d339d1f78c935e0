"""
Analytics Recorder

Appends immutable tenant events (order created, status changed, chat turn,
table call). Recording is awaited by callers but can never fail them: store
errors are logged and reported as ``False``.
"""

import logging
from typing import Any, Optional

from qrorder.core.exceptions import StoreError
from qrorder.models import AnalyticsEventType, new_id, utcnow
from qrorder.store.base import BaseStore

logger = logging.getLogger(__name__)


class AnalyticsRecorder:
    """Append-only event writer."""

    def __init__(self, store: BaseStore):
        self.store = store

    async def record(
        self,
        organization_id: str,
        event_type: AnalyticsEventType,
        payload: dict[str, Any],
        session_id: Optional[str] = None,
    ) -> bool:
        """
        Append one analytics event.

        Returns:
            bool: True if the event was stored
        """
        try:
            await self.store.insert_analytics_event({
                "id": new_id(),
                "organization_id": organization_id,
                "event_type": event_type.value,
                "event_data": payload,
                "session_id": session_id,
                "created_at": utcnow(),
            })
        except StoreError as e:
            logger.warning(
                f"Analytics event {event_type.value} not recorded "
                f"for organization {organization_id}: {e}"
            )
            return False

        logger.debug(f"Analytics event {event_type.value} recorded for {organization_id}")
        return True
