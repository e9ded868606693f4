"""Typing presence Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel


class TypingOut(BaseModel):
    hub_id: str
    user_id: str
    user_name: str
    timestamp: datetime

    model_config = {"from_attributes": True}
