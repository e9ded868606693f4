from datetime import datetime, timedelta, timezone
from typing import List

import pytest
import pytest_asyncio

import hubcomm.models  # noqa: F401
from hubcomm.database import make_engine
from hubcomm.schemas.notification import NotificationPayload
from hubcomm.services.container import HubServices
from hubcomm.services.notifications import Notifier, Permission
from hubcomm.store import DocumentStore


class FakeClock:
    """Store clock that only moves when a test says so."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier(Notifier):
    def __init__(self, permission: Permission = Permission.GRANTED):
        self.permission = permission
        self.shown: List[NotificationPayload] = []

    async def request_permission(self) -> Permission:
        return self.permission

    def show(self, payload: NotificationPayload) -> None:
        self.shown.append(payload)


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def store(tmp_path, clock):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'hub.db'}")
    store = DocumentStore(engine, clock=clock)
    await store.create_all()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def services(store):
    services = HubServices.build(store)
    yield services
    await services.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()
