"""Broadcast alert model: priority-tagged announcements for a whole hub."""

import enum
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hubcomm.database import Base, UTCDateTime
from hubcomm.models.document import HubDocument


class BroadcastType(str, enum.Enum):
    ANNOUNCEMENT = "announcement"
    ALERT = "alert"
    REMINDER = "reminder"
    EMERGENCY = "emergency"


class BroadcastPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class BroadcastAlert(HubDocument, Base):
    __tablename__ = "hub_broadcasts"

    sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sender_name: Mapped[str] = mapped_column(String(200), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[BroadcastType] = mapped_column(Enum(BroadcastType), default=BroadcastType.ANNOUNCEMENT)
    priority: Mapped[BroadcastPriority] = mapped_column(
        Enum(BroadcastPriority), default=BroadcastPriority.NORMAL
    )

    # Unset means "never expires"; a past value means expired or invalidated.
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    acknowledged_by: Mapped[List[str]] = mapped_column(JSON, default=list)
