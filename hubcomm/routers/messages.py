"""Messages router: history, send, read receipts and deletion for one hub."""

from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from hubcomm.config import settings
from hubcomm.routers.auth import CurrentUser, require_user
from hubcomm.schemas.message import MessageCreate, MessageGroupOut, MessageOut, SentMessageOut
from hubcomm.services.container import HubServices, get_services
from hubcomm.services.messages import annotate_mentions, group_messages

router = APIRouter(prefix="/hubs/{hub_id}/messages", tags=["messages"])


@router.get("", response_model=List[MessageOut])
async def get_history(
    hub_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    current_user: CurrentUser = Depends(require_user),
    services: HubServices = Depends(get_services),
):
    """The most recent messages, oldest first."""
    return await services.messages.fetch_history(hub_id, limit)


@router.get("/groups", response_model=List[MessageGroupOut])
async def get_grouped_history(
    hub_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    current_user: CurrentUser = Depends(require_user),
    services: HubServices = Depends(get_services),
):
    """Recent history folded into same-sender display groups."""
    messages = await services.messages.fetch_history(hub_id, limit)
    return group_messages(messages, timedelta(seconds=settings.MESSAGE_GROUP_WINDOW_SECONDS))


@router.get("/unread-count")
async def get_unread_count(
    hub_id: str,
    current_user: CurrentUser = Depends(require_user),
    services: HubServices = Depends(get_services),
):
    return {"unread_count": await services.messages.unread_count(hub_id, current_user.id)}


@router.post("", response_model=SentMessageOut, status_code=status.HTTP_201_CREATED)
async def send_message(
    hub_id: str,
    payload: MessageCreate,
    current_user: CurrentUser = Depends(require_user),
    services: HubServices = Depends(get_services),
):
    message = await services.messages.send(
        hub_id,
        current_user.id,
        current_user.display_name,
        payload.text,
        payload.kind,
        payload.media_url,
    )
    # sending ends the typing burst
    await services.typing.stop_typing(hub_id, current_user.id)
    return annotate_mentions(message)


@router.post("/{message_id}/read", response_model=MessageOut)
async def mark_read(
    hub_id: str,
    message_id: str,
    current_user: CurrentUser = Depends(require_user),
    services: HubServices = Depends(get_services),
):
    return await services.messages.mark_read(hub_id, message_id, current_user.id)


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    hub_id: str,
    message_id: str,
    current_user: CurrentUser = Depends(require_user),
    services: HubServices = Depends(get_services),
):
    """Only the sender may delete a message."""
    await services.messages.delete(hub_id, message_id, current_user.id)
