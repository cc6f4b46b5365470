"""Import all models so Base.metadata knows every table."""
from duo_chat.infrastructure.db.models.connection import ConnectionModel
from duo_chat.infrastructure.db.models.connection_request import ConnectionRequestModel
from duo_chat.infrastructure.db.models.message import MessageModel
from duo_chat.infrastructure.db.models.outbox import OutboxMessageModel
from duo_chat.infrastructure.db.models.user import UserModel

__all__ = [
    "ConnectionModel",
    "ConnectionRequestModel",
    "MessageModel",
    "OutboxMessageModel",
    "UserModel",
]
