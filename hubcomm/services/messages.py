"""
Message channel: ordered history and live feed for one hub, plus read
receipts and sender-only deletion.

Ordering is by the store-assigned timestamp only. The channel does not look
inside the text; `annotate_mentions` is the read-side helper callers use
to attach mention ids to a sent message.
"""

import logging
from datetime import timedelta
from typing import Callable, List, Optional

from hubcomm.errors import NotFound, Unauthorized, ValidationError
from hubcomm.models.message import Message, MessageKind
from hubcomm.schemas.message import MessageGroupOut, MessageOut, SentMessageOut
from hubcomm.services.mentions import extract_user_ids
from hubcomm.store import DocumentStore, ErrorCallback, HubQuery, Unsubscribe

logger = logging.getLogger(__name__)

DEFAULT_GROUP_WINDOW = timedelta(minutes=5)


def _ascending(rows: List[Message]) -> List[MessageOut]:
    # rows arrive newest first so the limit keeps the most recent ones
    return [MessageOut.model_validate(row) for row in reversed(rows)]


class MessageChannel:
    def __init__(self, store: DocumentStore, history_limit: int = 50):
        self.store = store
        self.history_limit = history_limit

    def _recent(self, hub_id: str, limit: Optional[int]) -> HubQuery:
        return HubQuery(Message, hub_id, descending=True, limit=limit or self.history_limit)

    async def send(
        self,
        hub_id: str,
        sender_id: str,
        sender_name: str,
        text: str,
        kind: MessageKind = MessageKind.TEXT,
        media_url: Optional[str] = None,
    ) -> MessageOut:
        if not hub_id or not sender_id:
            raise ValidationError("A hub and a sender are required to send a message")

        kind = MessageKind(kind)
        text = (text or "").strip()
        if kind == MessageKind.MEDIA and not media_url:
            raise ValidationError("Media messages need a media_url")
        if not text and kind != MessageKind.MEDIA:
            raise ValidationError("Message text cannot be empty")

        doc = Message(
            hub_id=hub_id,
            sender_id=sender_id,
            sender_name=sender_name or "Unknown",
            text=text,
            kind=kind,
            media_url=media_url,
            read_by=[sender_id],
        )
        doc = await self.store.create(doc)
        logger.info(f"Message {doc.id} sent to hub {hub_id} by {sender_id}")
        return MessageOut.model_validate(doc)

    async def fetch_history(self, hub_id: str, limit: Optional[int] = None) -> List[MessageOut]:
        """The most recent ``limit`` messages, oldest first."""
        rows = await self.store.query(self._recent(hub_id, limit))
        return _ascending(rows)

    async def subscribe(
        self,
        hub_id: str,
        on_update: Callable[[List[MessageOut]], None],
        on_error: Optional[ErrorCallback] = None,
        limit: Optional[int] = None,
    ) -> Unsubscribe:
        """Live feed of the recent window, delivered whole and oldest first on every change."""

        def deliver(rows: List[Message]) -> None:
            on_update(_ascending(rows))

        return await self.store.subscribe(self._recent(hub_id, limit), deliver, on_error)

    async def mark_read(self, hub_id: str, message_id: str, user_id: str) -> MessageOut:
        if not user_id:
            raise ValidationError("A user is required to mark a message read")
        doc, _ = await self.store.array_union(Message, hub_id, message_id, "read_by", user_id)
        return MessageOut.model_validate(doc)

    async def delete(self, hub_id: str, message_id: str, requester_id: str) -> None:
        doc = await self.store.get(Message, hub_id, message_id)
        if doc is None:
            raise NotFound("Message not found")
        if doc.sender_id != requester_id:
            raise Unauthorized("Only the message sender can delete it")

        if not await self.store.delete(Message, hub_id, message_id):
            raise NotFound("Message not found")
        logger.info(f"Message {message_id} deleted from hub {hub_id}")

    async def unread_count(self, hub_id: str, user_id: str) -> int:
        messages = await self.fetch_history(hub_id)
        return sum(1 for m in messages if user_id not in m.read_by)


def group_messages(
    messages: List[MessageOut], window: timedelta = DEFAULT_GROUP_WINDOW
) -> List[MessageGroupOut]:
    """
    Fold consecutive messages from the same sender into one display group,
    starting a new group whenever the gap to the previous message exceeds
    ``window``.
    """
    groups: List[MessageGroupOut] = []
    previous: Optional[MessageOut] = None
    for message in messages:
        if (
            previous is None
            or previous.sender_id != message.sender_id
            or message.timestamp - previous.timestamp > window
        ):
            groups.append(MessageGroupOut(
                sender_id=message.sender_id,
                sender_name=message.sender_name,
                started_at=message.timestamp,
                messages=[],
            ))
        groups[-1].messages.append(message)
        previous = message
    return groups


def annotate_mentions(message: MessageOut) -> SentMessageOut:
    """Attach the ids mentioned in a sent message for the sender's UI."""
    return SentMessageOut(**message.model_dump(), mentioned_user_ids=sorted(extract_user_ids(message.text)))
