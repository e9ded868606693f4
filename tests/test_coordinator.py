import pytest
import pytest_asyncio

from hubcomm.errors import TransientIOError, ValidationError
from hubcomm.models.message import Message
from hubcomm.models.typing_status import TypingStatus
from hubcomm.services.broadcasts import BroadcastChannel
from hubcomm.services.coordinator import HubCoordinator
from hubcomm.services.messages import MessageChannel
from hubcomm.services.notifications import Stream


@pytest_asyncio.fixture
async def session(services, notifier):
    frames = []
    coordinator = services.coordinator_for("u2", "Bob", frames.append, notifier)
    coordinator.dispatcher.set_permission("granted")
    yield coordinator, frames
    await coordinator.close()


def _types(frames):
    return [f["type"] for f in frames]


@pytest.mark.asyncio
async def test_switch_hub_keeps_three_subscriptions(session, store):
    coordinator, frames = session
    await coordinator.switch_hub("h1")
    assert store.subscription_count(hub_id="h1") == 3
    assert coordinator.open_streams() == ["broadcasts", "messages", "typing"]
    assert sorted(_types(frames)) == ["broadcasts", "messages", "typing"]

    await coordinator.switch_hub("h2")
    assert store.subscription_count(hub_id="h1") == 0
    assert store.subscription_count(hub_id="h2") == 3
    assert store.subscription_count() == 3

    await coordinator.switch_hub(None)
    assert store.subscription_count() == 0
    assert coordinator.hub_id is None
    assert not coordinator.dispatcher.is_primed("h2", Stream.MESSAGES)


@pytest.mark.asyncio
async def test_existing_history_does_not_notify(session, services, notifier):
    coordinator, _ = session
    await services.messages.send("h1", "u1", "Alice", "old news @Bob(u2)")
    await coordinator.switch_hub("h1")
    assert notifier.shown == []
    assert [m.text for m in coordinator.message_list] == ["old news @Bob(u2)"]


@pytest.mark.asyncio
async def test_new_message_from_someone_else_notifies(session, services, notifier):
    coordinator, frames = session
    await coordinator.switch_hub("h1")

    await services.messages.send("h1", "u1", "Alice", "ping @Bob(u2)")
    assert [p.title for p in notifier.shown] == ["Alice mentioned you"]
    assert frames[-1]["type"] == "messages"
    assert frames[-1]["items"][-1]["text"] == "ping @Bob(u2)"

    # looking at the message list now
    coordinator.set_surface("messages")
    await services.messages.send("h1", "u1", "Alice", "again")
    assert len(notifier.shown) == 1


@pytest.mark.asyncio
async def test_broadcasts_notify_and_list(session, services, notifier):
    coordinator, frames = session
    await coordinator.switch_hub("h1")
    await services.broadcasts.create("h1", "admin", "Ada", "Lunch", "Pizza in room 4")

    assert [p.data["type"] for p in notifier.shown] == ["broadcast"]
    assert [a.title for a in coordinator.broadcast_list] == ["Lunch"]


@pytest.mark.asyncio
async def test_own_messages_never_notify(session, notifier):
    coordinator, _ = session
    await coordinator.switch_hub("h1")

    sent = await coordinator.send_message("hi @Alice(u1)")
    assert sent.mentioned_user_ids == ["u1"]
    assert notifier.shown == []


@pytest.mark.asyncio
async def test_sending_clears_typing(session, services, store):
    coordinator, _ = session
    await coordinator.switch_hub("h1")

    await coordinator.keystroke()
    assert await store.get(TypingStatus, "h1", "u2") is not None
    # own record is filtered from this session's view
    assert coordinator.typing_list == []

    await coordinator.send_message("done typing")
    assert await store.get(TypingStatus, "h1", "u2") is None
    assert not services.typing.is_armed("h1", "u2")


@pytest.mark.asyncio
async def test_other_users_typing_is_pushed(session, services):
    coordinator, frames = session
    await coordinator.switch_hub("h1")
    await services.typing.start_typing("h1", "u1", "Alice")
    assert frames[-1]["type"] == "typing"
    assert [(u["user_id"], u["user_name"]) for u in frames[-1]["users"]] == [("u1", "Alice")]
    assert [t.user_id for t in coordinator.typing_list] == ["u1"]


@pytest.mark.asyncio
async def test_switching_hub_stops_typing_in_previous_hub(session, store):
    coordinator, _ = session
    await coordinator.switch_hub("h1")
    await coordinator.keystroke()
    await coordinator.switch_hub("h2")
    assert await store.get(TypingStatus, "h1", "u2") is None


@pytest.mark.asyncio
async def test_late_callbacks_for_old_hub_are_dropped(session):
    coordinator, frames = session
    await coordinator.switch_hub("h2")
    count = len(frames)
    coordinator._on_messages("h1", [])
    coordinator._on_error("h1", "messages", TransientIOError("late"))
    assert len(frames) == count
    assert coordinator.open_streams() == ["broadcasts", "messages", "typing"]


@pytest.mark.asyncio
async def test_dead_subscription_can_be_resubscribed(session, services, store, monkeypatch):
    coordinator, frames = session
    await coordinator.switch_hub("h1")
    await services.messages.send("h1", "u1", "Alice", "before")

    real_query = store.query

    async def failing(query):
        if query.model is Message:
            raise TransientIOError("permission denied")
        return await real_query(query)

    monkeypatch.setattr(store, "query", failing)
    await services.messages.send("h1", "u1", "Alice", "during")

    assert frames[-1]["type"] == "subscription_error"
    assert frames[-1]["stream"] == "messages"
    assert coordinator.open_streams() == ["broadcasts", "typing"]
    # last good list stays on screen
    assert [m.text for m in coordinator.message_list] == ["before"]

    monkeypatch.setattr(store, "query", real_query)
    assert await coordinator.resubscribe() == ["messages"]
    assert coordinator.open_streams() == ["broadcasts", "messages", "typing"]
    assert [m.text for m in coordinator.message_list] == ["before", "during"]


@pytest.mark.asyncio
async def test_actions_need_an_active_hub(session):
    coordinator, _ = session
    with pytest.raises(ValidationError):
        await coordinator.send_message("hello")
    with pytest.raises(ValidationError):
        await coordinator.keystroke()
    assert await coordinator.resubscribe() == []


@pytest.mark.asyncio
async def test_notification_click_navigates(session):
    coordinator, frames = session
    path = coordinator.handle_notification_click({"data": {"hub_id": "h1", "type": "broadcast"}})
    assert path == "/hubs/h1/broadcasts"
    assert frames[-1] == {"type": "navigate", "path": "/hubs/h1/broadcasts", "focus": True}


@pytest_asyncio.fixture
async def narrow_session(services, store, notifier):
    """A session whose message and broadcast windows are smaller than the history."""
    frames = []
    coordinator = HubCoordinator(
        user_id="u2",
        display_name="Bob",
        messages=MessageChannel(store, history_limit=3),
        broadcasts=BroadcastChannel(store, list_limit=2),
        typing=services.typing,
        emit=frames.append,
        notifier=notifier,
    )
    coordinator.dispatcher.set_permission("granted")
    yield coordinator
    await coordinator.close()


@pytest.mark.asyncio
async def test_deleted_message_does_not_renotify_older_one(narrow_session, services, notifier):
    sent = [await services.messages.send("h1", "u1", "Alice", f"old {i}") for i in range(4)]
    await narrow_session.switch_hub("h1")
    assert [m.text for m in narrow_session.message_list] == ["old 1", "old 2", "old 3"]

    await services.messages.delete("h1", sent[-1].id, "u1")
    assert [m.text for m in narrow_session.message_list] == ["old 0", "old 1", "old 2"]
    assert notifier.shown == []

    await services.messages.send("h1", "u1", "Alice", "fresh")
    assert [p.body for p in notifier.shown] == ["fresh"]


@pytest.mark.asyncio
async def test_invalidated_broadcast_does_not_renotify_older_one(narrow_session, services, notifier):
    alerts = [await services.broadcasts.create("h1", "admin", "Ada", f"t{i}", "m") for i in range(3)]
    await narrow_session.switch_hub("h1")
    assert [a.title for a in narrow_session.broadcast_list] == ["t2", "t1"]

    await services.broadcasts.invalidate("h1", alerts[-1].id)
    assert [a.title for a in narrow_session.broadcast_list] == ["t1", "t0"]
    assert notifier.shown == []
