"""
hubcomm – hub-scoped document store with a live change feed.

Documents are ORM rows keyed by ``(hub_id, id)``. Every committed write
re-runs each query subscribed to the touched ``(collection, hub)`` and hands
the subscriber the full ordered result set (a snapshot, never a diff).

Usage::

    store = DocumentStore(engine)
    unsubscribe = await store.subscribe(
        HubQuery(Message, "h1", descending=True, limit=50),
        on_snapshot=lambda rows: ...,
        on_error=lambda exc: ...,
    )
    ...
    unsubscribe()
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from sqlalchemy import asc, desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from hubcomm.database import Base, make_session_factory, utcnow
from hubcomm.database import engine as default_engine
from hubcomm.errors import NotFound, TransientIOError

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[List[Any]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True)
class HubQuery:
    """An ordered, optionally limited query over one hub's collection."""

    model: Type[Any]
    hub_id: str
    order_by: str = "timestamp"
    descending: bool = False
    limit: Optional[int] = None

    @property
    def topic(self) -> Tuple[str, str]:
        return (self.model.__tablename__, self.hub_id)


@dataclass(eq=False)
class _Subscription:
    query: HubQuery
    on_snapshot: SnapshotCallback
    on_error: Optional[ErrorCallback] = None
    active: bool = True


class DocumentStore:
    def __init__(
        self,
        bind: Optional[AsyncEngine] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.engine = bind if bind is not None else default_engine
        self._session_factory = make_session_factory(self.engine)
        self.clock = clock
        self._last_stamp: Optional[datetime] = None
        self._write_lock = asyncio.Lock()
        self._subscriptions: Dict[Tuple[str, str], List[_Subscription]] = {}

    # ── Lifecycle ──

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        self._subscriptions.clear()
        await self.engine.dispose()

    # ── Timestamps ──

    def server_timestamp(self) -> datetime:
        """Current store time, strictly increasing across calls."""
        now = self.clock()
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now

    def _stamp(self, doc: Any) -> None:
        if getattr(doc, "timestamp", None) is None:
            doc.timestamp = self.server_timestamp()

    @asynccontextmanager
    async def _session(self):
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.error(f"Store call failed: {exc}")
            raise TransientIOError(str(exc)) from exc

    # ── Reads ──

    async def get(self, model: Type[Any], hub_id: str, doc_id: str) -> Optional[Any]:
        async with self._session() as session:
            return await session.get(model, {"hub_id": hub_id, "id": doc_id})

    async def query(self, query: HubQuery) -> List[Any]:
        column = getattr(query.model, query.order_by)
        stmt = (
            select(query.model)
            .where(query.model.hub_id == query.hub_id)
            .order_by(desc(column) if query.descending else asc(column))
        )
        if query.limit is not None:
            stmt = stmt.limit(query.limit)

        async with self._session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ── Writes ──

    async def create(self, doc: Any) -> Any:
        """Insert a new document, assigning an id and the store timestamp."""
        if not doc.id:
            doc.id = uuid.uuid4().hex
        self._stamp(doc)

        async with self._write_lock:
            async with self._session() as session:
                session.add(doc)
                await session.commit()

        await self._publish(type(doc), doc.hub_id)
        return doc

    async def set(self, doc: Any) -> Any:
        """Upsert a document under its known id."""
        self._stamp(doc)

        async with self._write_lock:
            async with self._session() as session:
                merged = await session.merge(doc)
                await session.commit()

        await self._publish(type(doc), doc.hub_id)
        return merged

    async def update(self, model: Type[Any], hub_id: str, doc_id: str, **fields: Any) -> Any:
        """Partial field merge on an existing document."""
        async with self._write_lock:
            async with self._session() as session:
                doc = await session.get(model, {"hub_id": hub_id, "id": doc_id})
                if doc is None:
                    raise NotFound(f"{model.__name__} {doc_id} not found")
                for name, value in fields.items():
                    setattr(doc, name, value)
                await session.commit()

        await self._publish(model, hub_id)
        return doc

    async def array_union(
        self, model: Type[Any], hub_id: str, doc_id: str, field: str, *values: str
    ) -> Tuple[Any, bool]:
        """
        Add ``values`` to the list stored in ``field``, skipping members already
        present. Returns the document and whether anything was written.
        """
        added: List[str] = []
        async with self._write_lock:
            async with self._session() as session:
                doc = await session.get(model, {"hub_id": hub_id, "id": doc_id})
                if doc is None:
                    raise NotFound(f"{model.__name__} {doc_id} not found")

                current = list(getattr(doc, field) or [])
                for value in values:
                    if value not in current and value not in added:
                        added.append(value)
                if added:
                    # assign a new list so the JSON column is flagged dirty
                    setattr(doc, field, current + added)
                    await session.commit()

        if added:
            await self._publish(model, hub_id)
        return doc, bool(added)

    async def delete(self, model: Type[Any], hub_id: str, doc_id: str) -> bool:
        """Delete a document; returns False when it did not exist."""
        async with self._write_lock:
            async with self._session() as session:
                doc = await session.get(model, {"hub_id": hub_id, "id": doc_id})
                if doc is None:
                    return False
                await session.delete(doc)
                await session.commit()

        await self._publish(model, hub_id)
        return True

    # ── Change feed ──

    async def subscribe(
        self,
        query: HubQuery,
        on_snapshot: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        """
        Deliver the current snapshot now and a fresh one after every write to
        the query's hub collection. A failed delivery kills the subscription.
        """
        sub = _Subscription(query, on_snapshot, on_error)
        self._subscriptions.setdefault(query.topic, []).append(sub)
        await self._deliver(sub)

        def unsubscribe() -> None:
            self._drop(sub)

        return unsubscribe

    def subscription_count(self, model: Optional[Type[Any]] = None, hub_id: Optional[str] = None) -> int:
        count = 0
        for (table, hub), subs in self._subscriptions.items():
            if model is not None and table != model.__tablename__:
                continue
            if hub_id is not None and hub != hub_id:
                continue
            count += len(subs)
        return count

    def _drop(self, sub: _Subscription) -> None:
        sub.active = False
        subs = self._subscriptions.get(sub.query.topic)
        if subs and sub in subs:
            subs.remove(sub)
            if not subs:
                del self._subscriptions[sub.query.topic]

    async def _publish(self, model: Type[Any], hub_id: str) -> None:
        for sub in list(self._subscriptions.get((model.__tablename__, hub_id), [])):
            await self._deliver(sub)

    async def _deliver(self, sub: _Subscription) -> None:
        if not sub.active:
            return
        try:
            snapshot = await self.query(sub.query)
        except TransientIOError as exc:
            logger.error(f"Subscription on {sub.query.topic} died: {exc}")
            self._drop(sub)
            if sub.on_error is not None:
                try:
                    sub.on_error(exc)
                except Exception:
                    logger.exception("Subscription error listener failed")
            return

        # unsubscribed while the query was in flight
        if not sub.active:
            return
        try:
            sub.on_snapshot(snapshot)
        except Exception:
            logger.exception(f"Snapshot listener on {sub.query.topic} failed")
