import uuid
from datetime import datetime
from typing import Optional

from hbg_core.schemas.parameter import LoadOptions
from pydantic import BaseModel, Field, field_validator

from .models import Conversation, ConversationType, Message, MessageType

MAX_MESSAGE_LENGTH = 4000


class ConversationLoadOptions(LoadOptions):
    include_archived: bool = False


class ConversationCreate(BaseModel):
    participant_ids: list[str] = Field(..., min_length=1)
    title: Optional[str] = Field(None, max_length=200)

    @field_validator("participant_ids")
    @classmethod
    def _distinct_ids(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(v.strip() for v in value if v.strip()))


class ConversationUpdate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class ParticipantsAdd(BaseModel):
    user_ids: list[str] = Field(..., min_length=1)


class MessageCreate(BaseModel):
    content: str = Field(..., max_length=MAX_MESSAGE_LENGTH)
    reply_to_message_id: Optional[uuid.UUID] = None


class MessageUpdate(BaseModel):
    content: str = Field(..., max_length=MAX_MESSAGE_LENGTH)


class ConversationDto(BaseModel):
    id: uuid.UUID
    title: Optional[str] = None
    type: ConversationType
    created_by_user_id: str
    created_at: Optional[datetime] = None
    last_message_at: Optional[datetime] = None
    last_message_preview: Optional[str] = None
    is_active: bool
    participant_ids: list[str]
    unread_count: int = 0

    @classmethod
    def from_model(cls, conversation: Conversation, user_id: str) -> "ConversationDto":
        """Expects `participants` to be loaded; `unread_count` is the one of `user_id`."""
        me = conversation.participant(user_id)
        return cls(
            id=conversation.id,
            title=conversation.title,
            type=conversation.type,
            created_by_user_id=conversation.created_by_user_id,
            created_at=conversation.created_at,
            last_message_at=conversation.last_message_at,
            last_message_preview=conversation.last_message_preview,
            is_active=conversation.is_active,
            participant_ids=[p.user_id for p in conversation.active_participants()],
            unread_count=me.unread_count if me is not None else 0,
        )


class MessageDto(BaseModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    sender_user_id: str
    content: str
    type: MessageType
    sent_at: Optional[datetime] = None
    edited_at: Optional[datetime] = None
    is_deleted: bool
    reply_to_message_id: Optional[uuid.UUID] = None
    read_by_user_ids: list[str] = Field(default_factory=list)

    @classmethod
    def from_model(cls, message: Message) -> "MessageDto":
        """Expects `read_receipts` to be loaded."""
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_user_id=message.sender_user_id,
            content=message.content,
            type=message.type,
            sent_at=message.sent_at,
            edited_at=message.edited_at,
            is_deleted=message.is_deleted,
            reply_to_message_id=message.reply_to_message_id,
            read_by_user_ids=[r.user_id for r in message.read_receipts],
        )
