"""Wires the store and the hub channels together; one instance per running app."""

from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request

from hubcomm.config import Settings, settings
from hubcomm.services.broadcasts import BroadcastChannel
from hubcomm.services.coordinator import HubCoordinator
from hubcomm.services.messages import MessageChannel
from hubcomm.services.notifications import Notifier
from hubcomm.services.presence import TypingTracker
from hubcomm.store import DocumentStore


@dataclass
class HubServices:
    store: DocumentStore
    messages: MessageChannel
    broadcasts: BroadcastChannel
    typing: TypingTracker

    @classmethod
    def build(cls, store: Optional[DocumentStore] = None, config: Settings = settings) -> "HubServices":
        store = store or DocumentStore()
        return cls(
            store=store,
            messages=MessageChannel(store, history_limit=config.MESSAGE_HISTORY_LIMIT),
            broadcasts=BroadcastChannel(store, list_limit=config.BROADCAST_LIST_LIMIT),
            typing=TypingTracker(
                store,
                idle_timeout=config.TYPING_IDLE_SECONDS,
                stale_after=config.TYPING_STALE_SECONDS,
            ),
        )

    def coordinator_for(
        self,
        user_id: str,
        display_name: str,
        emit: Callable[[dict], None],
        notifier: Optional[Notifier] = None,
    ) -> HubCoordinator:
        return HubCoordinator(
            user_id=user_id,
            display_name=display_name,
            messages=self.messages,
            broadcasts=self.broadcasts,
            typing=self.typing,
            emit=emit,
            notifier=notifier,
        )

    async def close(self) -> None:
        await self.typing.close()


# ── Dependency for FastAPI routes ──
def get_services(request: Request) -> HubServices:
    return request.app.state.services
