"""Message Pydantic schemas."""

from datetime import datetime
from typing import List, Optional, Set

from pydantic import BaseModel, Field

from hubcomm.models.message import MessageKind


class MessageCreate(BaseModel):
    text: str = ""
    kind: MessageKind = MessageKind.TEXT
    media_url: Optional[str] = None


class MessageOut(BaseModel):
    id: str
    hub_id: str
    sender_id: str
    sender_name: str
    text: str
    kind: MessageKind = MessageKind.TEXT
    media_url: Optional[str] = None
    timestamp: datetime
    read_by: Set[str] = Field(default_factory=set)

    model_config = {"from_attributes": True}


class SentMessageOut(MessageOut):
    mentioned_user_ids: List[str] = Field(default_factory=list)


class MessageGroupOut(BaseModel):
    """Consecutive messages from one sender, rendered under a single header."""

    sender_id: str
    sender_name: str
    started_at: datetime
    messages: List[MessageOut]
