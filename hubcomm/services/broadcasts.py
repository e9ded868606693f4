"""
Broadcast alert channel: priority-tagged announcements for one hub.

An alert is active while ``expires_at`` is unset or in the future. Expiry is a
pure read-side filter evaluated against the store clock; invalidating an alert
pushes ``expires_at`` into the past instead of deleting the row.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from hubcomm.errors import ValidationError
from hubcomm.models.broadcast import BroadcastAlert, BroadcastPriority, BroadcastType
from hubcomm.schemas.broadcast import BroadcastOut
from hubcomm.store import DocumentStore, ErrorCallback, HubQuery, Unsubscribe

logger = logging.getLogger(__name__)


def is_active(alert, now: datetime) -> bool:
    return alert.expires_at is None or alert.expires_at > now


class BroadcastChannel:
    def __init__(self, store: DocumentStore, list_limit: int = 50):
        self.store = store
        self.list_limit = list_limit

    def _newest_first(self, hub_id: str) -> HubQuery:
        return HubQuery(BroadcastAlert, hub_id, descending=True)

    def _active(self, rows: List[BroadcastAlert], limit: Optional[int] = None) -> List[BroadcastOut]:
        now = self.store.clock()
        alerts = [BroadcastOut.model_validate(row) for row in rows if is_active(row, now)]
        return alerts[: limit or self.list_limit]

    async def create(
        self,
        hub_id: str,
        sender_id: str,
        sender_name: str,
        title: str,
        message: str,
        type: BroadcastType = BroadcastType.ANNOUNCEMENT,
        priority: BroadcastPriority = BroadcastPriority.NORMAL,
        expires_after: Optional[timedelta] = None,
    ) -> BroadcastOut:
        if not hub_id or not sender_id:
            raise ValidationError("A hub and a sender are required to broadcast")
        title = (title or "").strip()
        message = (message or "").strip()
        if not title or not message:
            raise ValidationError("Broadcasts need a title and a message")
        if expires_after is not None and expires_after <= timedelta(0):
            raise ValidationError("expires_after must be positive")

        # fixed once here, never re-evaluated
        expires_at = self.store.clock() + expires_after if expires_after is not None else None

        doc = BroadcastAlert(
            hub_id=hub_id,
            sender_id=sender_id,
            sender_name=sender_name or "Unknown",
            title=title,
            message=message,
            type=BroadcastType(type),
            priority=BroadcastPriority(priority),
            expires_at=expires_at,
            acknowledged_by=[sender_id],
        )
        doc = await self.store.create(doc)
        logger.info(f"Broadcast {doc.id} ({doc.priority.value}) created in hub {hub_id} by {sender_id}")
        return BroadcastOut.model_validate(doc)

    async def list(self, hub_id: str, limit: Optional[int] = None) -> List[BroadcastOut]:
        """Active alerts, newest first."""
        rows = await self.store.query(self._newest_first(hub_id))
        return self._active(rows, limit)

    async def subscribe(
        self,
        hub_id: str,
        on_update: Callable[[List[BroadcastOut]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        def deliver(rows: List[BroadcastAlert]) -> None:
            on_update(self._active(rows))

        return await self.store.subscribe(self._newest_first(hub_id), deliver, on_error)

    async def acknowledge(self, hub_id: str, alert_id: str, user_id: str) -> BroadcastOut:
        if not user_id:
            raise ValidationError("A user is required to acknowledge a broadcast")
        doc, _ = await self.store.array_union(BroadcastAlert, hub_id, alert_id, "acknowledged_by", user_id)
        return BroadcastOut.model_validate(doc)

    async def invalidate(self, hub_id: str, alert_id: str) -> BroadcastOut:
        """Soft delete: the record stays for the audit trail but is no longer active."""
        past = self.store.clock() - timedelta(seconds=1)
        doc = await self.store.update(BroadcastAlert, hub_id, alert_id, expires_at=past)
        logger.info(f"Broadcast {alert_id} in hub {hub_id} invalidated")
        return BroadcastOut.model_validate(doc)

    async def unread_count(self, hub_id: str, user_id: str) -> int:
        rows = await self.store.query(self._newest_first(hub_id))
        now = self.store.clock()
        return sum(1 for row in rows if is_active(row, now) and user_id not in (row.acknowledged_by or []))
