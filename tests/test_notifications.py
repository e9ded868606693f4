import itertools
from datetime import datetime, timedelta, timezone

import pytest

from hubcomm.errors import NotificationUnavailable
from hubcomm.models.broadcast import BroadcastPriority
from hubcomm.schemas.broadcast import BroadcastOut
from hubcomm.schemas.message import MessageOut
from hubcomm.services.messages import MessageChannel
from hubcomm.services.notifications import (
    NotificationDispatcher,
    NullNotifier,
    Permission,
    SocketNotifier,
    Stream,
    Surface,
    ViewContext,
    message_payload,
)

from conftest import RecordingNotifier

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
_ticks = itertools.count()


def _at():
    # store timestamps are strictly increasing in creation order
    return NOW + timedelta(seconds=next(_ticks))


def _message(id, sender="u1", text="hello", hub="h1"):
    return MessageOut(id=id, hub_id=hub, sender_id=sender, sender_name=sender.upper(), text=text, timestamp=_at())


def _payload():
    return message_payload(_message("A"), "u9")


def _alert(id, priority=BroadcastPriority.NORMAL, message="Doors open at nine", hub="h1"):
    return BroadcastOut(
        id=id, hub_id=hub, sender_id="admin", sender_name="Ada", title="Heads up",
        message=message, type="announcement", priority=priority, timestamp=_at(),
    )


@pytest.fixture
def dispatcher(notifier):
    dispatcher = NotificationDispatcher(notifier)
    dispatcher.set_permission("granted")
    return dispatcher


def test_only_items_new_since_last_snapshot_notify(dispatcher, notifier):
    ctx = ViewContext(user_id="u9")
    a, b, c = _message("A"), _message("B"), _message("C")

    assert dispatcher.process_snapshot("h1", Stream.MESSAGES, [a, b], ctx) == []
    assert [p.data["item_id"] for p in dispatcher.process_snapshot("h1", Stream.MESSAGES, [a, b, c], ctx)] == ["C"]
    assert dispatcher.process_snapshot("h1", Stream.MESSAGES, [a, b, c], ctx) == []
    assert len(notifier.shown) == 1


def test_older_item_reentering_window_is_not_news(dispatcher, notifier):
    ctx = ViewContext(user_id="u9")
    old, a, b = _message("OLD"), _message("A"), _message("B")

    dispatcher.process_snapshot("h1", Stream.MESSAGES, [a, b], ctx)
    # B deleted, OLD slides back into the window
    assert dispatcher.process_snapshot("h1", Stream.MESSAGES, [old, a], ctx) == []

    c = _message("C")
    assert [p.data["item_id"] for p in dispatcher.process_snapshot("h1", Stream.MESSAGES, [a, c], ctx)] == ["C"]
    assert len(notifier.shown) == 1


def test_broadcast_snapshots_notify_once_for_new_alert(dispatcher, notifier):
    ctx = ViewContext(user_id="u9")
    a, b, c = _alert("A"), _alert("B"), _alert("C")

    assert dispatcher.process_snapshot("h1", Stream.BROADCASTS, [a, b], ctx) == []
    assert len(dispatcher.process_snapshot("h1", Stream.BROADCASTS, [c, a, b], ctx)) == 1
    assert dispatcher.process_snapshot("h1", Stream.BROADCASTS, [c, a, b], ctx) == []
    assert [p.data["item_id"] for p in notifier.shown] == ["C"]


def test_item_leaving_and_reentering_window_does_not_renotify(dispatcher, notifier):
    ctx = ViewContext(user_id="u9")
    a, b, c = _message("A"), _message("B"), _message("C")
    dispatcher.process_snapshot("h1", Stream.MESSAGES, [a], ctx)
    dispatcher.process_snapshot("h1", Stream.MESSAGES, [a, b], ctx)
    dispatcher.process_snapshot("h1", Stream.MESSAGES, [b, c], ctx)
    dispatcher.process_snapshot("h1", Stream.MESSAGES, [a, b, c], ctx)
    assert [p.data["item_id"] for p in notifier.shown] == ["B", "C"]


@pytest.mark.asyncio
async def test_mention_targets_only_the_mentioned_user(store):
    channel = MessageChannel(store)
    message = await channel.send("h1", "u1", "Alice", "hello @Bob(u2)")

    raised = {}
    for user in ("u1", "u2", "u3"):
        dispatcher = NotificationDispatcher(RecordingNotifier())
        dispatcher.set_permission("granted")
        raised[user] = dispatcher.dispatch_if_new(message, ViewContext(user_id=user))

    assert raised["u1"] is None

    mention = raised["u2"]
    assert mention.title == "Alice mentioned you"
    assert mention.body == "hello @Bob"
    assert mention.duration_ms == 10_000
    assert mention.require_interaction is True
    assert mention.data["is_mention"] is True

    plain = raised["u3"]
    assert plain.title == "New message from Alice"
    assert plain.duration_ms == 5_000
    assert plain.require_interaction is False


def test_dispatch_if_new_is_once_per_item(dispatcher):
    ctx = ViewContext(user_id="u9")
    assert dispatcher.dispatch_if_new(_message("A"), ctx) is not None
    assert dispatcher.dispatch_if_new(_message("A"), ctx) is None


def test_suppressed_while_looking_at_the_same_surface(dispatcher):
    watching_messages = ViewContext(user_id="u9", hub_id="h1", surface=Surface.MESSAGES)
    assert dispatcher.dispatch_if_new(_message("A"), watching_messages) is None
    # broadcasts still come through on the message surface
    assert dispatcher.dispatch_if_new(_alert("X"), watching_messages) is not None

    watching_broadcasts = ViewContext(user_id="u9", hub_id="h1", surface=Surface.BROADCASTS)
    assert dispatcher.dispatch_if_new(_message("B"), watching_broadcasts) is not None
    assert dispatcher.dispatch_if_new(_alert("Y"), watching_broadcasts) is None

    other_hub = ViewContext(user_id="u9", hub_id="h2", surface=Surface.MESSAGES)
    assert dispatcher.dispatch_if_new(_message("C"), other_hub) is not None


def test_denied_permission_still_advances_dedup(notifier):
    dispatcher = NotificationDispatcher(notifier)
    ctx = ViewContext(user_id="u9")
    dispatcher.process_snapshot("h1", Stream.MESSAGES, [], ctx)
    assert dispatcher.process_snapshot("h1", Stream.MESSAGES, [_message("A")], ctx) == []

    dispatcher.set_permission("granted")
    assert dispatcher.process_snapshot("h1", Stream.MESSAGES, [_message("A")], ctx) == []
    assert notifier.shown == []


@pytest.mark.parametrize(
    "priority, duration, interaction",
    [
        (BroadcastPriority.URGENT, 15_000, True),
        (BroadcastPriority.HIGH, 10_000, False),
        (BroadcastPriority.NORMAL, 7_000, False),
        (BroadcastPriority.LOW, 5_000, False),
    ],
)
def test_broadcast_loudness_follows_priority(dispatcher, priority, duration, interaction):
    payload = dispatcher.dispatch_if_new(_alert("X", priority), ViewContext(user_id="u9"))
    assert payload.duration_ms == duration
    assert payload.require_interaction is interaction
    assert payload.urgency == priority.value
    assert payload.title.startswith("🚨") is (priority == BroadcastPriority.URGENT)
    assert payload.body == "Ada: Doors open at nine"
    assert payload.link == "/hubs/h1/broadcasts"


def test_previews_are_truncated(dispatcher):
    ctx = ViewContext(user_id="u9")
    message = dispatcher.dispatch_if_new(_message("A", text="x" * 250), ctx)
    assert message.body == "x" * 100 + "..."

    alert = dispatcher.dispatch_if_new(_alert("X", message="y" * 250), ctx)
    assert alert.body == "Ada: " + "y" * 150 + "..."


def test_notifier_failure_degrades_silently(notifier):
    def explode(payload):
        raise RuntimeError("platform gone")

    notifier.show = explode
    dispatcher = NotificationDispatcher(notifier)
    dispatcher.set_permission("granted")
    assert dispatcher.dispatch_if_new(_message("A"), ViewContext(user_id="u9")) is None


@pytest.mark.asyncio
async def test_request_permission():
    assert await NotificationDispatcher(NullNotifier()).request_permission() is False
    assert await NotificationDispatcher(RecordingNotifier(Permission.GRANTED)).request_permission() is True
    assert await NotificationDispatcher(RecordingNotifier(Permission.DENIED)).request_permission() is False

    class Broken(RecordingNotifier):
        async def request_permission(self):
            raise RuntimeError("prompt blocked")

    assert await NotificationDispatcher(Broken()).request_permission() is False


def test_unsupported_platform_never_notifies():
    dispatcher = NotificationDispatcher(NullNotifier())
    dispatcher.set_permission("granted")
    assert not dispatcher.granted
    assert dispatcher.dispatch_if_new(_message("A"), ViewContext(user_id="u9")) is None


def test_reset_forgets_baseline(dispatcher, notifier):
    ctx = ViewContext(user_id="u9")
    dispatcher.process_snapshot("h1", Stream.MESSAGES, [_message("A")], ctx)
    dispatcher.process_snapshot("h2", Stream.MESSAGES, [_message("B", hub="h2")], ctx)

    dispatcher.reset("h1")
    assert not dispatcher.is_primed("h1", Stream.MESSAGES)
    assert dispatcher.is_primed("h2", Stream.MESSAGES)

    # re-primes instead of notifying for what was already there
    assert dispatcher.process_snapshot("h1", Stream.MESSAGES, [_message("A"), _message("C")], ctx) == []

    dispatcher.reset()
    assert not dispatcher.is_primed("h2", Stream.MESSAGES)


def test_handle_interaction_links():
    dispatcher = NotificationDispatcher()
    assert dispatcher.handle_interaction({"link": "/hubs/h1/messages"}) == "/hubs/h1/messages"
    assert dispatcher.handle_interaction({"data": {"hub_id": "h2", "type": "broadcast"}}) == "/hubs/h2/broadcasts"
    assert dispatcher.handle_interaction({"hub_id": "h3"}) == "/hubs/h3/messages"
    assert dispatcher.handle_interaction({}) == "/"
    assert dispatcher.handle_interaction(_payload()) == "/hubs/h1/messages"


@pytest.mark.asyncio
async def test_socket_notifier_frames():
    frames = []
    notifier = SocketNotifier(frames.append)

    assert await notifier.request_permission() == Permission.DEFAULT
    assert frames == [{"type": "request_permission"}]

    with pytest.raises(NotificationUnavailable):
        notifier.show(_payload())

    notifier.report_permission("granted")
    notifier.show(_payload())
    assert frames[-1]["type"] == "notification"
    assert frames[-1]["payload"]["link"] == "/hubs/h1/messages"
