import logging
import uuid

from hbg_core.exceptions import (
    AccessDeniedException,
    NotFoundException,
    ValidationFailedException,
)
from hbg_core.schemas.parameter import LoadOptions
from hbg_db import load_page
from hbg_db.queryset import QuerySet
from sqlalchemy import and_
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    SYSTEM_SENDER,
    Conversation,
    ConversationParticipant,
    ConversationType,
    Message,
    MessageReadReceipt,
    MessageType,
    message_preview,
    utcnow,
)
from .schemas import ConversationCreate

logger = logging.getLogger(__name__)

DELETED_MESSAGE_CONTENT = "Message deleted"
MESSAGE_SORT_FIELDS = ("sent_at",)
CONVERSATION_SORT_FIELDS = ("title", "created_at", "last_message_at")


def _is_member(user_id: str):
    return Conversation.participants.any(
        and_(
            ConversationParticipant.user_id == user_id,
            ConversationParticipant.left_at.is_(None),
        )
    )


class ChatService:
    """
    Conversations of the current user and the messages in them.

    Only active participants see a conversation: a missing one raises
    `NotFoundException`, somebody else's raises `AccessDeniedException`.
    Every structural change (creation, title, joins and leaves) is
    recorded as a SYSTEM message in the conversation.

    Examples:
        >>> service = ChatService(db, user.subject_id, user.username)
        >>> conversation, notice = await service.create_conversation(
        ...     ConversationCreate(participant_ids=["8"])
        ... )
        >>> await service.send_message(conversation.id, "Hello")
    """

    def __init__(self, db: AsyncSession, user_id: str, user_name: str | None = None):
        self.db = db
        self.user_id = user_id
        self.user_name = user_name or user_id

    # --- Conversations ---

    def conversations(self, include_archived: bool = False) -> QuerySet[Conversation]:
        qs = Conversation.objects.filter(_is_member(self.user_id)).prefetch_related(
            "participants"
        )
        if not include_archived:
            qs = qs.filter(is_active=True)
        return qs

    async def load_conversations(
        self,
        options: LoadOptions,
        *,
        include_archived: bool = False,
        max_take: int | None = None,
    ) -> tuple[list[Conversation], int]:
        """Most recently active first unless `options` sorts otherwise."""
        qs = self.conversations(include_archived)
        if not options.get_ordering():
            qs = qs.order_by("-last_message_at", "-created_at")
        return await load_page(
            self.db, qs, options, allowed=CONVERSATION_SORT_FIELDS, max_take=max_take
        )

    async def get_conversation(self, conversation_id: uuid.UUID) -> Conversation:
        conversation = (
            await Conversation.objects.filter(id=conversation_id)
            .prefetch_related("participants")
            .first(self.db)
        )
        if conversation is None:
            raise NotFoundException(f"Conversation {conversation_id} not found")
        if conversation.participant(self.user_id) is None:
            raise AccessDeniedException("You don't have access to this conversation")
        return conversation

    async def has_access(self, conversation_id: uuid.UUID) -> bool:
        return await Conversation.objects.filter(
            _is_member(self.user_id), id=conversation_id
        ).exists(self.db)

    async def find_direct_conversation(self, other_user_id: str) -> Conversation | None:
        return (
            await Conversation.objects.filter(
                _is_member(self.user_id),
                _is_member(other_user_id),
                type=ConversationType.DIRECT,
            )
            .prefetch_related("participants")
            .first(self.db)
        )

    async def create_conversation(
        self, dto: ConversationCreate
    ) -> tuple[Conversation, Message | None]:
        """
        Start a direct chat with one other user or a titled group.

        A direct chat that already exists is returned as is, without a new
        system message.
        """
        others = [uid for uid in dto.participant_ids if uid != self.user_id]
        if not others:
            raise ValidationFailedException("Cannot create a conversation with yourself")

        title = dto.title.strip() if dto.title else None
        if len(others) == 1 and not title:
            existing = await self.find_direct_conversation(others[0])
            if existing is not None:
                return existing, None
            kind = ConversationType.DIRECT
            notice = "Conversation started"
        elif not title:
            raise ValidationFailedException("Group conversations must have a title")
        else:
            kind = ConversationType.GROUP
            notice = f"{self.user_name} created the group"

        now = utcnow()
        conversation = Conversation(
            id=uuid.uuid4(),
            title=title if kind == ConversationType.GROUP else None,
            type=kind,
            created_by_user_id=self.user_id,
            created_at=now,
            is_active=True,
            participants=[
                ConversationParticipant(user_id=uid, joined_at=now, unread_count=0)
                for uid in [self.user_id, *others]
            ],
        )
        self.db.add(conversation)
        message = self._system_message(conversation, notice)
        await self.db.commit()
        logger.info(
            "User %s created %s conversation %s",
            self.user_id,
            kind.value.lower(),
            conversation.id,
        )
        return conversation, message

    async def update_title(
        self, conversation_id: uuid.UUID, title: str
    ) -> tuple[Conversation, Message]:
        conversation = await self.get_conversation(conversation_id)
        if conversation.type != ConversationType.GROUP:
            raise ValidationFailedException("Only group conversations have a title")
        conversation.title = title.strip()
        message = self._system_message(
            conversation, f'{self.user_name} changed the group title to "{conversation.title}"'
        )
        await self.db.commit()
        return conversation, message

    async def set_archived(self, conversation_id: uuid.UUID, archived: bool) -> Conversation:
        conversation = await self.get_conversation(conversation_id)
        conversation.is_active = not archived
        await self.db.commit()
        logger.info(
            "User %s %s conversation %s",
            self.user_id,
            "archived" if archived else "unarchived",
            conversation_id,
        )
        return conversation

    async def add_participants(
        self, conversation_id: uuid.UUID, user_ids: list[str]
    ) -> tuple[Conversation, list[Message]]:
        """Add users to a group; users already in it are skipped, former members rejoin."""
        conversation = await self.get_conversation(conversation_id)
        if conversation.type != ConversationType.GROUP:
            raise ValidationFailedException("Can only add participants to group conversations")

        rows = {p.user_id: p for p in conversation.participants}
        notices = []
        for uid in dict.fromkeys(u.strip() for u in user_ids if u.strip()):
            row = rows.get(uid)
            if row is not None and row.left_at is None:
                continue
            if row is None:
                row = ConversationParticipant(user_id=uid)
                conversation.participants.append(row)
            row.joined_at = utcnow()
            row.left_at = None
            row.unread_count = 0
            notices.append(
                self._system_message(conversation, f"{self.user_name} added {uid} to the group")
            )
        await self.db.commit()
        return conversation, notices

    async def leave(self, conversation_id: uuid.UUID) -> tuple[Conversation, Message]:
        conversation = await self.get_conversation(conversation_id)
        if conversation.type != ConversationType.GROUP:
            raise ValidationFailedException("Can only leave group conversations")
        if len(conversation.active_participants()) <= 2:
            raise ValidationFailedException("Group conversations must have at least 2 participants")

        participant = conversation.participant(self.user_id)
        if participant is not None:
            participant.left_at = utcnow()
        message = self._system_message(conversation, f"{self.user_name} left the group")
        await self.db.commit()
        logger.info("User %s left conversation %s", self.user_id, conversation_id)
        return conversation, message

    # --- Messages ---

    def messages(self, conversation_id: uuid.UUID) -> QuerySet[Message]:
        """All messages of the conversation; call `get_conversation` first to check access."""
        return Message.objects.filter(conversation_id=conversation_id).prefetch_related(
            "read_receipts"
        )

    async def load_messages(
        self,
        conversation_id: uuid.UUID,
        options: LoadOptions,
        *,
        max_take: int | None = None,
    ) -> tuple[list[Message], int]:
        """Oldest first unless `options` sorts otherwise."""
        await self.get_conversation(conversation_id)
        qs = self.messages(conversation_id)
        if not options.get_ordering():
            qs = qs.order_by("sent_at")
        return await load_page(
            self.db, qs, options, allowed=MESSAGE_SORT_FIELDS, max_take=max_take
        )

    async def get_message(self, message_id: uuid.UUID) -> tuple[Message, Conversation]:
        message = (
            await Message.objects.filter(id=message_id)
            .prefetch_related("read_receipts")
            .first(self.db)
        )
        if message is None:
            raise NotFoundException(f"Message {message_id} not found")
        return message, await self.get_conversation(message.conversation_id)

    async def send_message(
        self,
        conversation_id: uuid.UUID,
        content: str,
        reply_to_message_id: uuid.UUID | None = None,
    ) -> Message:
        conversation = await self.get_conversation(conversation_id)
        text = content.strip()
        if not text:
            raise ValidationFailedException("Message content cannot be empty")
        if not conversation.is_active:
            raise ValidationFailedException("Cannot send messages to archived conversation")
        if reply_to_message_id is not None and not await Message.objects.filter(
            id=reply_to_message_id, conversation_id=conversation_id
        ).exists(self.db):
            raise NotFoundException(f"Message {reply_to_message_id} not found")

        message = Message(
            id=uuid.uuid4(),
            conversation_id=conversation.id,
            sender_user_id=self.user_id,
            content=text,
            type=MessageType.TEXT,
            sent_at=utcnow(),
            is_deleted=False,
            reply_to_message_id=reply_to_message_id,
            read_receipts=[MessageReadReceipt(user_id=self.user_id, read_at=utcnow())],
        )
        self.db.add(message)
        self._record_last_message(conversation, message)
        for participant in conversation.active_participants():
            if participant.user_id != self.user_id:
                participant.unread_count += 1
        await self.db.commit()
        logger.debug("User %s sent message %s to %s", self.user_id, message.id, conversation_id)
        return message

    async def _own_message(self, message_id: uuid.UUID, verb: str) -> Message:
        message, _ = await self.get_message(message_id)
        if message.sender_user_id != self.user_id:
            raise AccessDeniedException(f"You can only {verb} your own messages")
        if message.is_deleted or message.is_system:
            raise ValidationFailedException("This message can no longer be changed")
        return message

    async def edit_message(self, message_id: uuid.UUID, content: str) -> Message:
        text = content.strip()
        if not text:
            raise ValidationFailedException("Message content cannot be empty")
        message = await self._own_message(message_id, "edit")
        message.content = text
        message.edited_at = utcnow()
        await self.db.commit()
        return message

    async def delete_message(self, message_id: uuid.UUID) -> Message:
        """Soft delete: the row stays with a placeholder content."""
        message = await self._own_message(message_id, "delete")
        message.content = DELETED_MESSAGE_CONTENT
        message.is_deleted = True
        await self.db.commit()
        logger.info("User %s deleted message %s", self.user_id, message_id)
        return message

    async def mark_read(self, message_id: uuid.UUID) -> tuple[Message, bool]:
        """Record that the user read the message; False when it already was."""
        message, conversation = await self.get_message(message_id)
        if any(r.user_id == self.user_id for r in message.read_receipts):
            return message, False

        message.read_receipts.append(MessageReadReceipt(user_id=self.user_id, read_at=utcnow()))
        participant = conversation.participant(self.user_id)
        if participant is not None:
            participant.unread_count = max(0, participant.unread_count - 1)
            participant.last_read_at = utcnow()
        await self.db.commit()
        return message, True

    async def mark_conversation_read(self, conversation_id: uuid.UUID) -> int:
        """Mark every message of the conversation read; returns how many were unread."""
        conversation = await self.get_conversation(conversation_id)
        unread = await (
            self.messages(conversation_id)
            .exclude(Message.read_receipts.any(MessageReadReceipt.user_id == self.user_id))
            .fetch(self.db)
        )

        now = utcnow()
        for message in unread:
            message.read_receipts.append(MessageReadReceipt(user_id=self.user_id, read_at=now))
        participant = conversation.participant(self.user_id)
        if participant is not None:
            participant.unread_count = 0
            participant.last_read_at = now
        await self.db.commit()
        return len(unread)

    def _system_message(self, conversation: Conversation, content: str) -> Message:
        message = Message(
            id=uuid.uuid4(),
            conversation_id=conversation.id,
            sender_user_id=SYSTEM_SENDER,
            content=content,
            type=MessageType.SYSTEM,
            sent_at=utcnow(),
            is_deleted=False,
            read_receipts=[],
        )
        self.db.add(message)
        self._record_last_message(conversation, message)
        return message

    @staticmethod
    def _record_last_message(conversation: Conversation, message: Message) -> None:
        conversation.last_message_at = message.sent_at
        conversation.last_message_preview = message_preview(message.content)
