"""Import all models so Base.metadata knows every table (create_all, migrations)."""
from eventro_chat.infrastructure.db.models.conversation import ConversationModel
from eventro_chat.infrastructure.db.models.message import MessageModel
from eventro_chat.infrastructure.db.models.outbox import OutboxMessageModel
from eventro_chat.infrastructure.db.models.participant import ParticipantModel
from eventro_chat.infrastructure.db.models.user import UserModel

__all__ = [
    "ConversationModel",
    "MessageModel",
    "OutboxMessageModel",
    "ParticipantModel",
    "UserModel",
]
