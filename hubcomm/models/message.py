"""Hub chat message model."""

import enum
from typing import List, Optional

from sqlalchemy import JSON, Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hubcomm.database import Base
from hubcomm.models.document import HubDocument


class MessageKind(str, enum.Enum):
    TEXT = "text"
    MEDIA = "media"


class Message(HubDocument, Base):
    __tablename__ = "hub_messages"

    sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sender_name: Mapped[str] = mapped_column(String(200), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    kind: Mapped[MessageKind] = mapped_column(Enum(MessageKind), default=MessageKind.TEXT)
    media_url: Mapped[Optional[str]] = mapped_column(String(500))

    # Grows by union only, see DocumentStore.array_union
    read_by: Mapped[List[str]] = mapped_column(JSON, default=list)
