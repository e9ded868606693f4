"""
WebSocket router: one live session per browser tab.

Each session owns a HubCoordinator. The client sends JSON frames with an
``action``; the server pushes snapshot, presence and notification frames
through an outbox queue so callbacks never block on the socket.

Client actions:
    switch_hub {hub_id}            set_surface {surface}
    keystroke                      stop_typing
    send {text, kind?, media_url?} mark_read {message_id}
    delete {message_id}            create_broadcast {title, message, ...}
    acknowledge {alert_id}         permission {state}
    notification_click {payload}   resubscribe
"""

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from hubcomm.errors import HubError, Unauthorized, ValidationError
from hubcomm.routers.auth import COOKIE_KEY, CurrentUser, decode_token
from hubcomm.schemas.broadcast import BroadcastCreate
from hubcomm.schemas.message import MessageCreate
from hubcomm.services.container import HubServices
from hubcomm.services.coordinator import HubCoordinator
from hubcomm.services.notifications import SocketNotifier

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


async def _pump(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    """Drain the outbox to the socket, in order."""
    try:
        while True:
            frame = await outbox.get()
            await websocket.send_json(frame)
    except (WebSocketDisconnect, RuntimeError):
        # socket already gone
        return


async def handle_frame(coordinator: HubCoordinator, user: CurrentUser, frame: dict) -> None:
    """Apply one client action to the session's coordinator."""
    action = frame.get("action")
    try:
        if action == "switch_hub":
            await coordinator.switch_hub(frame.get("hub_id"))
        elif action == "set_surface":
            coordinator.set_surface(frame["surface"])
        elif action == "keystroke":
            await coordinator.keystroke()
        elif action == "stop_typing":
            await coordinator.stop_typing()
        elif action == "send":
            payload = MessageCreate.model_validate(frame)
            message = await coordinator.send_message(payload.text, payload.kind, payload.media_url)
            coordinator.emit({"type": "sent", "message": message.model_dump(mode="json")})
        elif action == "mark_read":
            await coordinator.mark_read(frame["message_id"])
        elif action == "delete":
            await coordinator.delete_message(frame["message_id"])
        elif action == "create_broadcast":
            if not user.is_elevated:
                raise Unauthorized("Only hub admins can create broadcasts")
            payload = BroadcastCreate.model_validate(frame)
            minutes = payload.expires_in_minutes
            await coordinator.create_broadcast(
                payload.title,
                payload.message,
                payload.type,
                payload.priority,
                timedelta(minutes=minutes) if minutes else None,
            )
        elif action == "acknowledge":
            await coordinator.acknowledge_broadcast(frame["alert_id"])
        elif action == "permission":
            await coordinator.report_permission(frame["state"])
        elif action == "notification_click":
            coordinator.handle_notification_click(frame.get("payload") or {})
        elif action == "resubscribe":
            await coordinator.resubscribe()
        else:
            raise ValidationError(f"Unknown action: {action!r}")
    except KeyError as exc:
        raise ValidationError(f"Missing field {exc} for action {action!r}") from exc
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc)) from exc


@router.websocket("/ws")
async def hub_socket(websocket: WebSocket, token: Optional[str] = None):
    """
    Live hub session. Auth comes from the ``token`` query parameter or the
    auth cookie set by the identity service.
    """
    user = decode_token(token or websocket.cookies.get(COOKIE_KEY))
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    services: HubServices = websocket.app.state.services
    outbox: asyncio.Queue = asyncio.Queue()
    notifier = SocketNotifier(outbox.put_nowait)
    coordinator = services.coordinator_for(user.id, user.display_name, outbox.put_nowait, notifier)
    pump = asyncio.create_task(_pump(websocket, outbox))
    logger.info(f"User {user.id} connected")

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                outbox.put_nowait({"type": "error", "status": 422, "detail": "Frames must be JSON"})
                continue
            if not isinstance(frame, dict):
                outbox.put_nowait({"type": "error", "status": 422, "detail": "Frames must be JSON objects"})
                continue

            try:
                await handle_frame(coordinator, user, frame)
            except HubError as exc:
                outbox.put_nowait({
                    "type": "error",
                    "action": frame.get("action"),
                    "status": exc.status_code,
                    "detail": exc.detail,
                })
    except WebSocketDisconnect:
        logger.info(f"User {user.id} disconnected")
    finally:
        await coordinator.close()
        pump.cancel()
