"""
Notification dispatcher: decides whether an incoming message or broadcast
becomes a system notification for the current user, and how loud it is.

One dispatcher exists per client session. It owns the per-hub dedup state
(ids already seen in this session) and the cached notification permission.
Nothing here ever raises into the caller: a missing platform facility, a
denied permission or a failed ``show`` all degrade to "no notification".
"""

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from hubcomm.errors import NotificationUnavailable
from hubcomm.models.broadcast import BroadcastPriority
from hubcomm.schemas.broadcast import BroadcastOut
from hubcomm.schemas.message import MessageOut
from hubcomm.schemas.notification import NotificationPayload
from hubcomm.services.mentions import extract_user_ids, render_for_display

logger = logging.getLogger(__name__)

MESSAGE_PREVIEW_CHARS = 100
BROADCAST_PREVIEW_CHARS = 150

MESSAGE_DURATION_MS = 5_000
MENTION_DURATION_MS = 10_000
BROADCAST_DURATION_MS = {
    BroadcastPriority.URGENT: 15_000,
    BroadcastPriority.HIGH: 10_000,
    BroadcastPriority.NORMAL: 7_000,
    BroadcastPriority.LOW: 5_000,
}

HubItem = Union[MessageOut, BroadcastOut]


class Stream(str, enum.Enum):
    MESSAGES = "messages"
    BROADCASTS = "broadcasts"


class Surface(str, enum.Enum):
    """What the user is looking at right now."""

    NONE = "none"
    MESSAGES = "messages"
    BROADCASTS = "broadcasts"


class Permission(str, enum.Enum):
    GRANTED = "granted"
    DENIED = "denied"
    DEFAULT = "default"


# Items are not surfaced while the user already looks at them
_SURFACE_FOR_STREAM = {
    Stream.MESSAGES: Surface.MESSAGES,
    Stream.BROADCASTS: Surface.BROADCASTS,
}


@dataclass
class _SeenState:
    """Ids already observed for one (hub, stream) plus the newest timestamp among them."""

    ids: Set[str] = field(default_factory=set)
    newest: Optional[datetime] = None

    def is_new(self, item: HubItem) -> bool:
        if item.id in self.ids:
            return False
        # older items re-entering a limited window are not news
        return self.newest is None or item.timestamp > self.newest

    def record(self, items: Sequence[HubItem]) -> None:
        for item in items:
            self.ids.add(item.id)
            if self.newest is None or item.timestamp > self.newest:
                self.newest = item.timestamp


@dataclass
class ViewContext:
    user_id: str
    hub_id: Optional[str] = None
    surface: Surface = Surface.NONE


# ══════════════════════════════════════════════════════════════
#  Platform notification facilities
# ══════════════════════════════════════════════════════════════

class Notifier:
    """Platform notification facility. Subclasses deliver the payload somewhere."""

    supported = True

    async def request_permission(self) -> Permission:
        return Permission.DENIED

    def show(self, payload: NotificationPayload) -> None:
        raise NotificationUnavailable("No notification facility")


class NullNotifier(Notifier):
    supported = False


class SocketNotifier(Notifier):
    """
    Hands notifications to a browser tab as frames; the tab owns the real
    Notification API and reports its permission state back.
    """

    def __init__(self, emit: Callable[[dict], None]):
        self.emit = emit
        self.permission = Permission.DEFAULT

    def report_permission(self, state: str) -> None:
        self.permission = Permission(state)

    async def request_permission(self) -> Permission:
        if self.permission == Permission.DEFAULT:
            self.emit({"type": "request_permission"})
        return self.permission

    def show(self, payload: NotificationPayload) -> None:
        if self.permission != Permission.GRANTED:
            raise NotificationUnavailable("Notification permission not granted in this tab")
        self.emit({"type": "notification", "payload": payload.model_dump(mode="json")})


# ══════════════════════════════════════════════════════════════
#  Payload builders
# ══════════════════════════════════════════════════════════════

def _preview(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def message_payload(message: MessageOut, user_id: str) -> NotificationPayload:
    is_mention = user_id in extract_user_ids(message.text)
    clean = render_for_display(message.text) or "Shared a media file"

    if is_mention:
        title = f"{message.sender_name} mentioned you"
        body = clean
    else:
        title = f"New message from {message.sender_name}"
        body = _preview(clean, MESSAGE_PREVIEW_CHARS)

    return NotificationPayload(
        title=title,
        body=body,
        urgency="high" if is_mention else "normal",
        duration_ms=MENTION_DURATION_MS if is_mention else MESSAGE_DURATION_MS,
        require_interaction=is_mention,
        tag=f"message-{message.hub_id}",
        link=f"/hubs/{message.hub_id}/messages",
        data={
            "type": "message",
            "hub_id": message.hub_id,
            "item_id": message.id,
            "sender_name": message.sender_name,
            "is_mention": is_mention,
        },
    )


def broadcast_payload(alert: BroadcastOut) -> NotificationPayload:
    urgent = alert.priority == BroadcastPriority.URGENT
    return NotificationPayload(
        title=f"🚨 {alert.title}" if urgent else alert.title,
        body=f"{alert.sender_name}: {_preview(alert.message, BROADCAST_PREVIEW_CHARS)}",
        urgency=alert.priority.value,
        duration_ms=BROADCAST_DURATION_MS[alert.priority],
        require_interaction=urgent,
        tag=f"broadcast-{alert.hub_id}",
        link=f"/hubs/{alert.hub_id}/broadcasts",
        data={
            "type": "broadcast",
            "hub_id": alert.hub_id,
            "item_id": alert.id,
            "sender_name": alert.sender_name,
            "priority": alert.priority.value,
        },
    )


def _stream_of(item: HubItem) -> Stream:
    return Stream.BROADCASTS if isinstance(item, BroadcastOut) else Stream.MESSAGES


# ══════════════════════════════════════════════════════════════
#  Dispatcher
# ══════════════════════════════════════════════════════════════

class NotificationDispatcher:
    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier = notifier or NullNotifier()
        self.permission = Permission.DEFAULT
        self._seen: Dict[Tuple[str, Stream], _SeenState] = {}

    # ── Permission ──

    @property
    def granted(self) -> bool:
        return self.notifier.supported and self.permission == Permission.GRANTED

    def set_permission(self, state: str) -> None:
        self.permission = Permission(state)

    async def request_permission(self) -> bool:
        if not self.notifier.supported:
            return False
        if self.permission == Permission.GRANTED:
            return True
        try:
            self.permission = Permission(await self.notifier.request_permission())
        except Exception as exc:
            logger.warning(f"Failed to request notification permission: {exc}")
            return False
        return self.permission == Permission.GRANTED

    # ── Dedup state ──

    def reset(self, hub_id: Optional[str] = None) -> None:
        """Forget seen ids for one hub, or for every hub when ``hub_id`` is None."""
        if hub_id is None:
            self._seen.clear()
            return
        for key in [k for k in self._seen if k[0] == hub_id]:
            del self._seen[key]

    def is_primed(self, hub_id: str, stream: Stream) -> bool:
        return (hub_id, Stream(stream)) in self._seen

    # ── Dispatch ──

    def process_snapshot(
        self, hub_id: str, stream: Stream, items: Sequence[HubItem], context: ViewContext
    ) -> List[NotificationPayload]:
        """
        Notify for the items of a full snapshot that were not in any earlier
        snapshot of this (hub, stream) and are newer than everything seen so
        far. The first snapshot only records the baseline: history that was
        already there is not news.
        """
        key = (hub_id, Stream(stream))
        seen = self._seen.get(key)
        if seen is None:
            self._seen[key] = seen = _SeenState()
            seen.record(items)
            return []

        fresh = [item for item in items if seen.is_new(item)]
        seen.record(items)

        raised = []
        for item in fresh:
            payload = self._evaluate(hub_id, item, context)
            if payload is not None:
                raised.append(payload)
        return raised

    def dispatch_if_new(self, item: HubItem, context: ViewContext) -> Optional[NotificationPayload]:
        seen = self._seen.setdefault((item.hub_id, _stream_of(item)), _SeenState())
        if item.id in seen.ids:
            return None
        seen.record([item])
        return self._evaluate(item.hub_id, item, context)

    def handle_interaction(self, payload: Union[NotificationPayload, dict]) -> str:
        """Where the app should navigate when the user clicks a notification."""
        if isinstance(payload, NotificationPayload):
            return payload.link
        link = payload.get("link")
        if link:
            return link
        data = payload.get("data") or payload
        hub_id = data.get("hub_id")
        kind = data.get("type", "message")
        if not hub_id:
            return "/"
        return f"/hubs/{hub_id}/broadcasts" if kind == "broadcast" else f"/hubs/{hub_id}/messages"

    def _evaluate(self, hub_id: str, item: HubItem, context: ViewContext) -> Optional[NotificationPayload]:
        stream = _stream_of(item)
        if item.sender_id == context.user_id:
            return None
        if context.hub_id == hub_id and context.surface == _SURFACE_FOR_STREAM[stream]:
            return None
        # checked last so the dedup state above has already advanced
        if not self.granted:
            return None

        if stream == Stream.MESSAGES:
            payload = message_payload(item, context.user_id)
        else:
            payload = broadcast_payload(item)

        try:
            self.notifier.show(payload)
        except Exception as exc:
            logger.warning(f"Notification for {stream.value} {item.id} not shown: {exc}")
            return None
        logger.debug(f"Raised notification for {stream.value} {item.id} in hub {hub_id}")
        return payload
