"""Typing presence record: one per (hub, user), the document id is the user id."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from hubcomm.database import Base
from hubcomm.models.document import HubDocument


class TypingStatus(HubDocument, Base):
    __tablename__ = "hub_typing"

    user_name: Mapped[str] = mapped_column(String(200), nullable=False)

    @property
    def user_id(self) -> str:
        return self.id
