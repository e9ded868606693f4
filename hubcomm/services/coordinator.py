"""
Hub coordinator: composition root for one client session (one browser tab).

Keeps exactly one message, one broadcast and one typing subscription open for
the active hub, feeds every snapshot to the UI and to the session's
notification dispatcher, and routes outgoing actions to the channels.
"""

import asyncio
import logging
from datetime import timedelta
from functools import partial
from typing import Callable, Dict, List, Optional, Set

from hubcomm.errors import ValidationError
from hubcomm.models.broadcast import BroadcastPriority, BroadcastType
from hubcomm.models.message import MessageKind
from hubcomm.schemas.broadcast import BroadcastOut
from hubcomm.schemas.message import MessageOut, SentMessageOut
from hubcomm.schemas.presence import TypingOut
from hubcomm.services.broadcasts import BroadcastChannel
from hubcomm.services.messages import MessageChannel, annotate_mentions
from hubcomm.services.notifications import (
    NotificationDispatcher,
    Notifier,
    SocketNotifier,
    Stream,
    Surface,
    ViewContext,
)
from hubcomm.services.presence import TypingTracker
from hubcomm.store import Unsubscribe

logger = logging.getLogger(__name__)

TYPING = "typing"
STREAMS = (Stream.MESSAGES.value, Stream.BROADCASTS.value, TYPING)


class HubCoordinator:
    def __init__(
        self,
        user_id: str,
        display_name: str,
        messages: MessageChannel,
        broadcasts: BroadcastChannel,
        typing: TypingTracker,
        emit: Callable[[dict], None],
        notifier: Optional[Notifier] = None,
        message_limit: Optional[int] = None,
    ):
        self.user_id = user_id
        self.display_name = display_name
        self.messages = messages
        self.broadcasts = broadcasts
        self.typing = typing
        self.emit = emit
        self.message_limit = message_limit
        self.dispatcher = NotificationDispatcher(notifier)

        self.hub_id: Optional[str] = None
        self.surface = Surface.NONE
        self._unsubscribers: Dict[str, Unsubscribe] = {}
        self._dead: Set[str] = set()
        self._switch_lock = asyncio.Lock()

        # last known lists, kept when a subscription dies
        self.message_list: List[MessageOut] = []
        self.broadcast_list: List[BroadcastOut] = []
        self.typing_list: List[TypingOut] = []

    @property
    def context(self) -> ViewContext:
        return ViewContext(user_id=self.user_id, hub_id=self.hub_id, surface=self.surface)

    def open_streams(self) -> List[str]:
        return sorted(self._unsubscribers)

    # ══════════════════════════════════════════════════════════
    #  Subscription lifecycle
    # ══════════════════════════════════════════════════════════

    async def switch_hub(self, hub_id: Optional[str]) -> None:
        async with self._switch_lock:
            previous = self.hub_id
            self._teardown()
            if previous:
                self.dispatcher.reset(previous)
                await self.typing.stop_typing(previous, self.user_id)

            self.hub_id = hub_id or None
            self.message_list, self.broadcast_list, self.typing_list = [], [], []
            if self.hub_id is None:
                self.dispatcher.reset()
                logger.debug(f"User {self.user_id} left all hubs")
                return

            await self._open(STREAMS)
            logger.info(f"User {self.user_id} switched hub {previous} -> {self.hub_id}")

    async def resubscribe(self) -> List[str]:
        """Reopen the streams whose subscription died; returns what was reopened."""
        async with self._switch_lock:
            if self.hub_id is None:
                return []
            dead = [s for s in STREAMS if s not in self._unsubscribers]
            await self._open(dead)
            return dead

    async def close(self) -> None:
        await self.switch_hub(None)

    def _teardown(self) -> None:
        for unsubscribe in self._unsubscribers.values():
            unsubscribe()
        self._unsubscribers.clear()
        self._dead.clear()

    async def _open(self, streams) -> None:
        hub_id = self.hub_id
        for stream in streams:
            self._dead.discard(stream)
            on_error = partial(self._on_error, hub_id, stream)
            if stream == Stream.MESSAGES.value:
                unsubscribe = await self.messages.subscribe(
                    hub_id, partial(self._on_messages, hub_id), on_error, limit=self.message_limit
                )
            elif stream == Stream.BROADCASTS.value:
                unsubscribe = await self.broadcasts.subscribe(hub_id, partial(self._on_broadcasts, hub_id), on_error)
            else:
                unsubscribe = await self.typing.subscribe(
                    hub_id, self.user_id, partial(self._on_typing, hub_id), on_error
                )
            if stream in self._dead:
                # died on its initial snapshot
                continue
            self._unsubscribers[stream] = unsubscribe

    # ══════════════════════════════════════════════════════════
    #  Snapshot callbacks
    # ══════════════════════════════════════════════════════════

    def _on_messages(self, hub_id: str, messages: List[MessageOut]) -> None:
        if hub_id != self.hub_id:
            return
        self.message_list = messages
        self.emit({
            "type": "messages",
            "hub_id": hub_id,
            "items": [m.model_dump(mode="json") for m in messages],
        })
        self._notify(hub_id, Stream.MESSAGES, messages)

    def _on_broadcasts(self, hub_id: str, alerts: List[BroadcastOut]) -> None:
        if hub_id != self.hub_id:
            return
        self.broadcast_list = alerts
        self.emit({
            "type": "broadcasts",
            "hub_id": hub_id,
            "items": [a.model_dump(mode="json") for a in alerts],
        })
        self._notify(hub_id, Stream.BROADCASTS, alerts)

    def _on_typing(self, hub_id: str, typists: List[TypingOut]) -> None:
        if hub_id != self.hub_id:
            return
        self.typing_list = typists
        self.emit({
            "type": "typing",
            "hub_id": hub_id,
            "users": [t.model_dump(mode="json") for t in typists],
        })

    def _on_error(self, hub_id: str, stream: str, exc: Exception) -> None:
        if hub_id != self.hub_id:
            return
        # the store already dropped it; the client has to resubscribe
        self._unsubscribers.pop(stream, None)
        self._dead.add(stream)
        logger.warning(f"{stream} subscription for hub {hub_id} died: {exc}")
        self.emit({"type": "subscription_error", "hub_id": hub_id, "stream": stream, "detail": str(exc)})

    def _notify(self, hub_id: str, stream: Stream, items) -> None:
        try:
            self.dispatcher.process_snapshot(hub_id, stream, items, self.context)
        except Exception:
            logger.exception(f"Notification dispatch failed for hub {hub_id}")

    # ══════════════════════════════════════════════════════════
    #  View state
    # ══════════════════════════════════════════════════════════

    def set_surface(self, surface: str) -> None:
        self.surface = Surface(surface)

    async def report_permission(self, state: str) -> bool:
        notifier = self.dispatcher.notifier
        if isinstance(notifier, SocketNotifier):
            notifier.report_permission(state)
        self.dispatcher.set_permission(state)
        return await self.dispatcher.request_permission()

    def handle_notification_click(self, payload: dict) -> str:
        path = self.dispatcher.handle_interaction(payload)
        self.emit({"type": "navigate", "path": path, "focus": True})
        return path

    # ══════════════════════════════════════════════════════════
    #  Outgoing actions
    # ══════════════════════════════════════════════════════════

    def _require_hub(self) -> str:
        if not self.hub_id:
            raise ValidationError("No active hub")
        return self.hub_id

    async def send_message(
        self, text: str, kind: MessageKind = MessageKind.TEXT, media_url: Optional[str] = None
    ) -> SentMessageOut:
        hub_id = self._require_hub()
        message = await self.messages.send(hub_id, self.user_id, self.display_name, text, kind, media_url)
        await self.typing.stop_typing(hub_id, self.user_id)
        return annotate_mentions(message)

    async def keystroke(self) -> None:
        await self.typing.start_typing(self._require_hub(), self.user_id, self.display_name)

    async def stop_typing(self) -> None:
        await self.typing.stop_typing(self._require_hub(), self.user_id)

    async def mark_read(self, message_id: str) -> MessageOut:
        return await self.messages.mark_read(self._require_hub(), message_id, self.user_id)

    async def delete_message(self, message_id: str) -> None:
        await self.messages.delete(self._require_hub(), message_id, self.user_id)

    async def create_broadcast(
        self,
        title: str,
        message: str,
        type: BroadcastType = BroadcastType.ANNOUNCEMENT,
        priority: BroadcastPriority = BroadcastPriority.NORMAL,
        expires_after: Optional[timedelta] = None,
    ) -> BroadcastOut:
        return await self.broadcasts.create(
            self._require_hub(), self.user_id, self.display_name, title, message, type, priority, expires_after
        )

    async def acknowledge_broadcast(self, alert_id: str) -> BroadcastOut:
        return await self.broadcasts.acknowledge(self._require_hub(), alert_id, self.user_id)
