"""Typing presence router: for clients that poll instead of holding a websocket."""

from typing import List

from fastapi import APIRouter, Depends

from hubcomm.routers.auth import CurrentUser, require_user
from hubcomm.schemas.presence import TypingOut
from hubcomm.services.container import HubServices, get_services

router = APIRouter(prefix="/hubs/{hub_id}/typing", tags=["typing"])


@router.get("", response_model=List[TypingOut])
async def who_is_typing(
    hub_id: str,
    current_user: CurrentUser = Depends(require_user),
    services: HubServices = Depends(get_services),
):
    """Other members typing right now; stale records are already filtered out."""
    return await services.typing.current(hub_id, viewer_id=current_user.id)


@router.post("/start")
async def start_typing(
    hub_id: str,
    current_user: CurrentUser = Depends(require_user),
    services: HubServices = Depends(get_services),
):
    await services.typing.start_typing(hub_id, current_user.id, current_user.display_name)
    return {"ok": True}


@router.post("/stop")
async def stop_typing(
    hub_id: str,
    current_user: CurrentUser = Depends(require_user),
    services: HubServices = Depends(get_services),
):
    await services.typing.stop_typing(hub_id, current_user.id)
    return {"ok": True}
