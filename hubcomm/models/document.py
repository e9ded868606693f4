"""Columns shared by every hub-scoped document."""

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from hubcomm.database import UTCDateTime


class HubDocument:
    """
    Mixin for documents addressed as ``hubs/{hub_id}/<collection>/{id}``.

    ``(hub_id, id)`` is the primary key; ``timestamp`` is filled in by the
    store at write time and is the ordering key of every hub query.
    """

    hub_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, index=True, nullable=False)
