"""
Typing presence: best-effort "is typing" records per hub.

Two independent state machines, since writer and reader are usually
different processes:

* writer side: every keystroke upserts the user's record and re-arms a local
  auto-clear timer (debounce). Stop, send and unmount delete it immediately.
* reader side: every delivered list drops the viewer's own record and any
  record older than the staleness window, whether or not it was deleted.

Store failures on the writer side are logged and swallowed.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from hubcomm.errors import TransientIOError, ValidationError
from hubcomm.models.typing_status import TypingStatus
from hubcomm.schemas.presence import TypingOut
from hubcomm.store import DocumentStore, ErrorCallback, HubQuery, Unsubscribe

logger = logging.getLogger(__name__)


class TypingTracker:
    def __init__(self, store: DocumentStore, idle_timeout: float = 3.0, stale_after: float = 5.0):
        self.store = store
        self.idle_timeout = idle_timeout
        self.stale_after = stale_after
        self._timers: Dict[Tuple[str, str], asyncio.TimerHandle] = {}
        self._pending: Set[asyncio.Task] = set()

    # ── Writer side ──

    async def start_typing(self, hub_id: str, user_id: str, user_name: str) -> None:
        if not hub_id or not user_id:
            raise ValidationError("A hub and a user are required for typing status")

        self._arm(hub_id, user_id)
        try:
            await self.store.set(TypingStatus(hub_id=hub_id, id=user_id, user_name=user_name or "Unknown"))
        except TransientIOError as exc:
            logger.warning(f"Could not set typing status for {user_id} in hub {hub_id}: {exc}")

    async def stop_typing(self, hub_id: str, user_id: str) -> None:
        self._disarm(hub_id, user_id)
        try:
            await self.store.delete(TypingStatus, hub_id, user_id)
        except TransientIOError as exc:
            logger.warning(f"Could not clear typing status for {user_id} in hub {hub_id}: {exc}")

    def is_armed(self, hub_id: str, user_id: str) -> bool:
        return (hub_id, user_id) in self._timers

    def _arm(self, hub_id: str, user_id: str) -> None:
        self._disarm(hub_id, user_id)
        loop = asyncio.get_running_loop()
        self._timers[(hub_id, user_id)] = loop.call_later(self.idle_timeout, self._expire, hub_id, user_id)

    def _disarm(self, hub_id: str, user_id: str) -> None:
        handle = self._timers.pop((hub_id, user_id), None)
        if handle is not None:
            handle.cancel()

    def _expire(self, hub_id: str, user_id: str) -> None:
        self._timers.pop((hub_id, user_id), None)
        task = asyncio.ensure_future(self.stop_typing(hub_id, user_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def close(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    # ── Reader side ──

    def active_typists(
        self, records: Sequence, viewer_id: Optional[str], now: Optional[datetime] = None
    ) -> List[TypingOut]:
        now = now or self.store.clock()
        cutoff = now - timedelta(seconds=self.stale_after)
        return [
            TypingOut.model_validate(r)
            for r in records
            if r.user_id != viewer_id and r.timestamp > cutoff
        ]

    async def current(self, hub_id: str, viewer_id: Optional[str] = None) -> List[TypingOut]:
        records = await self.store.query(HubQuery(TypingStatus, hub_id))
        return self.active_typists(records, viewer_id)

    async def subscribe(
        self,
        hub_id: str,
        viewer_id: Optional[str],
        on_change: Callable[[List[TypingOut]], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        watch = _TypingWatch(self, viewer_id, on_change)
        unsubscribe = await self.store.subscribe(HubQuery(TypingStatus, hub_id), watch.on_snapshot, on_error)

        def stop() -> None:
            watch.close()
            unsubscribe()

        return stop


class _TypingWatch:
    """
    Reader-side filter for one subscription. Besides filtering each snapshot it
    re-checks the last one when the oldest visible record goes stale, so a
    record nobody deleted still disappears without another store change.
    """

    def __init__(self, tracker: TypingTracker, viewer_id: Optional[str], on_change):
        self.tracker = tracker
        self.viewer_id = viewer_id
        self.on_change = on_change
        self._records: Sequence = []
        self._delivered: Optional[List[Tuple[str, datetime]]] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False

    def on_snapshot(self, records: Sequence) -> None:
        self._records = records
        self._deliver(force=True)

    def _refresh(self) -> None:
        self._timer = None
        try:
            self._deliver()
        except Exception:
            logger.exception("Typing listener failed")

    def _deliver(self, force: bool = False) -> None:
        self._cancel_timer()
        if self._closed:
            return

        now = self.tracker.store.clock()
        active = self.tracker.active_typists(self._records, self.viewer_id, now)
        keys = [(t.user_id, t.timestamp) for t in active]
        if force or keys != self._delivered:
            self._delivered = keys
            self.on_change(active)

        if active:
            oldest = min(t.timestamp for t in active)
            delay = (oldest + timedelta(seconds=self.tracker.stale_after) - now).total_seconds()
            self._timer = asyncio.get_running_loop().call_later(max(delay, 0.0), self._refresh)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self) -> None:
        self._closed = True
        self._cancel_timer()
