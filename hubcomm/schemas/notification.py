"""Payload handed to the platform notification facility."""

from typing import Any, Dict

from pydantic import BaseModel, Field


class NotificationPayload(BaseModel):
    title: str
    body: str
    urgency: str
    duration_ms: int
    require_interaction: bool = False
    tag: str
    link: str
    data: Dict[str, Any] = Field(default_factory=dict)
