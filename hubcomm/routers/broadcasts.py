"""Broadcasts router: hub-wide alerts with per-member acknowledgment."""

from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from hubcomm.routers.auth import CurrentUser, require_elevated, require_user
from hubcomm.schemas.broadcast import BroadcastCreate, BroadcastOut
from hubcomm.services.container import HubServices, get_services

router = APIRouter(prefix="/hubs/{hub_id}/broadcasts", tags=["broadcasts"])


@router.get("", response_model=List[BroadcastOut])
async def list_broadcasts(
    hub_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    current_user: CurrentUser = Depends(require_user),
    services: HubServices = Depends(get_services),
):
    """Active (unexpired) broadcasts, newest first."""
    return await services.broadcasts.list(hub_id, limit)


@router.get("/unread-count")
async def get_unread_count(
    hub_id: str,
    current_user: CurrentUser = Depends(require_user),
    services: HubServices = Depends(get_services),
):
    return {"unread_count": await services.broadcasts.unread_count(hub_id, current_user.id)}


@router.post("", response_model=BroadcastOut, status_code=status.HTTP_201_CREATED)
async def create_broadcast(
    hub_id: str,
    payload: BroadcastCreate,
    current_user: CurrentUser = Depends(require_elevated),
    services: HubServices = Depends(get_services),
):
    expires_after = timedelta(minutes=payload.expires_in_minutes) if payload.expires_in_minutes else None
    return await services.broadcasts.create(
        hub_id,
        current_user.id,
        current_user.display_name,
        payload.title,
        payload.message,
        payload.type,
        payload.priority,
        expires_after,
    )


@router.post("/{alert_id}/acknowledge", response_model=BroadcastOut)
async def acknowledge_broadcast(
    hub_id: str,
    alert_id: str,
    current_user: CurrentUser = Depends(require_user),
    services: HubServices = Depends(get_services),
):
    return await services.broadcasts.acknowledge(hub_id, alert_id, current_user.id)


@router.post("/{alert_id}/invalidate", response_model=BroadcastOut)
async def invalidate_broadcast(
    hub_id: str,
    alert_id: str,
    current_user: CurrentUser = Depends(require_elevated),
    services: HubServices = Depends(get_services),
):
    """Retire an alert early. The record is kept, it just stops being active."""
    return await services.broadcasts.invalidate(hub_id, alert_id)
