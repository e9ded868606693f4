"""
hubcomm – SQLAlchemy ORM models package.

Imports all model classes so ``Base.metadata.create_all`` discovers them
through a single ``import hubcomm.models``.
"""

from hubcomm.models.message import Message, MessageKind                                 # noqa: F401
from hubcomm.models.broadcast import BroadcastAlert, BroadcastPriority, BroadcastType   # noqa: F401
from hubcomm.models.typing_status import TypingStatus                                   # noqa: F401
