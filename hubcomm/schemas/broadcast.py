"""Broadcast alert Pydantic schemas."""

from datetime import datetime
from typing import Optional, Set

from pydantic import BaseModel, Field

from hubcomm.models.broadcast import BroadcastPriority, BroadcastType


class BroadcastCreate(BaseModel):
    title: str
    message: str
    type: BroadcastType = BroadcastType.ANNOUNCEMENT
    priority: BroadcastPriority = BroadcastPriority.NORMAL
    expires_in_minutes: Optional[int] = Field(default=None, gt=0)


class BroadcastOut(BaseModel):
    id: str
    hub_id: str
    sender_id: str
    sender_name: str
    title: str
    message: str
    type: BroadcastType
    priority: BroadcastPriority
    timestamp: datetime
    expires_at: Optional[datetime] = None
    acknowledged_by: Set[str] = Field(default_factory=set)

    model_config = {"from_attributes": True}
