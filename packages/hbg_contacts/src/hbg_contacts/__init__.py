from .hub import ChatHub, conversation_group
from .models import (
    Conversation,
    ConversationParticipant,
    ConversationType,
    Message,
    MessageReadReceipt,
    MessageType,
)
from .routes import router
from .service import ChatService

__all__ = [
    "ChatHub",
    "ChatService",
    "Conversation",
    "ConversationParticipant",
    "ConversationType",
    "Message",
    "MessageReadReceipt",
    "MessageType",
    "conversation_group",
    "router",
]
