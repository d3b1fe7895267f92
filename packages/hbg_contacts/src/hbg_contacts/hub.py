import logging
import uuid
from typing import Any

from hbg_core.schemas.parameter import LoadOptions
from hbg_core.schemas.response import LoadResult
from hbg_hub import ClientConnection, ConnectionManager, Hub, HubContext, hub_method, user_group
from pydantic import TypeAdapter
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .schemas import (
    ConversationCreate,
    ConversationDto,
    ConversationUpdate,
    MessageCreate,
    MessageDto,
    MessageUpdate,
    ParticipantsAdd,
)
from .service import ChatService

logger = logging.getLogger(__name__)

CONVERSATION_CREATED_EVENT = "ConversationCreated"
CONVERSATION_UPDATED_EVENT = "ConversationUpdated"
CONVERSATION_ARCHIVED_EVENT = "ConversationArchived"
CONVERSATION_LEFT_EVENT = "ConversationLeft"
MESSAGE_RECEIVED_EVENT = "MessageReceived"
MESSAGE_EDITED_EVENT = "MessageEdited"
MESSAGE_DELETED_EVENT = "MessageDeleted"
READ_RECEIPT_EVENT = "MessageReadReceiptUpdated"
TYPING_STARTED_EVENT = "UserStartedTyping"
TYPING_STOPPED_EVENT = "UserStoppedTyping"
USER_STATUS_EVENT = "UserStatusChanged"

ONLINE = "Online"
OFFLINE = "Offline"

_uuid_adapter = TypeAdapter(uuid.UUID)


def conversation_group(conversation_id: uuid.UUID) -> str:
    return f"conversation:{conversation_id}"


def _load_options(options: Any) -> LoadOptions:
    return LoadOptions.model_validate(options or {})


class ChatHub(Hub):
    """
    Real-time side of the contacts chat.

    Every connection joins the group of each conversation its user takes
    part in, so pushes to `conversation:<id>` reach all participants. Users
    going online or offline are announced to the people they chat with.
    """

    name = "contacts"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        manager: ConnectionManager | None = None,
        max_take: int | None = None,
    ) -> None:
        super().__init__(session_factory, manager)
        self.max_take = max_take

    def _service(self, ctx: HubContext) -> ChatService:
        return ChatService(ctx.db, ctx.user_id, ctx.user.username)

    def _connections_of(self, user_id: str) -> set[str]:
        return self.manager.group_members(user_group(user_id))

    def add_user_to_conversation(self, user_id: str, conversation_id: uuid.UUID) -> None:
        """Put every live connection of `user_id` in the conversation group."""
        group = conversation_group(conversation_id)
        for connection_id in self._connections_of(user_id):
            self.manager.add_to_group(connection_id, group)

    def remove_user_from_conversation(self, user_id: str, conversation_id: uuid.UUID) -> None:
        group = conversation_group(conversation_id)
        for connection_id in self._connections_of(user_id):
            self.manager.remove_from_group(connection_id, group)

    async def _announce_status(
        self, connection: ClientConnection, groups: list[str], status: str
    ) -> None:
        own = self._connections_of(connection.user_id) | {connection.id}
        peers: set[str] = set()
        for group in groups:
            peers |= self.manager.group_members(group)
        for connection_id in peers - own:
            await self.manager.send_to_connection(
                connection_id, USER_STATUS_EVENT, connection.user_id, status
            )

    async def on_connected(self, connection: ClientConnection) -> None:
        async with self.session_factory() as db:
            ids = [
                c.id
                for c in await ChatService(db, connection.user_id)
                .conversations(include_archived=True)
                .fetch(db)
            ]
        groups = [conversation_group(cid) for cid in ids]
        first = self._connections_of(connection.user_id) == {connection.id}
        for group in groups:
            self.manager.add_to_group(connection.id, group)
        logger.debug("Connection %s joined %d conversations", connection.id, len(groups))
        if first:
            await self._announce_status(connection, groups, ONLINE)

    async def on_disconnected(self, connection: ClientConnection) -> None:
        if self._connections_of(connection.user_id) - {connection.id}:
            return
        groups = sorted(g for g in connection.groups if g.startswith("conversation:"))
        await self._announce_status(connection, groups, OFFLINE)
        for group in groups:
            conversation_id = group.partition(":")[2]
            await self.manager.send_to_group(
                group,
                TYPING_STOPPED_EVENT,
                conversation_id,
                connection.user_id,
                exclude=connection.id,
            )

    # --- Conversations ---

    @hub_method("LoadConversations")
    async def load_conversations(self, ctx: HubContext, options: Any = None):
        items, total = await self._service(ctx).load_conversations(
            _load_options(options), max_take=self.max_take
        )
        return LoadResult[ConversationDto](
            data=[ConversationDto.from_model(c, ctx.user_id) for c in items], total_count=total
        )

    @hub_method("CreateConversation")
    async def create_conversation(
        self, ctx: HubContext, participant_ids: Any, title: Any = None
    ) -> ConversationDto:
        dto = ConversationCreate.model_validate({"participant_ids": participant_ids, "title": title})
        conversation, notice = await self._service(ctx).create_conversation(dto)
        result = ConversationDto.from_model(conversation, ctx.user_id)
        if notice is None:
            return result

        for participant in conversation.active_participants():
            self.add_user_to_conversation(participant.user_id, conversation.id)
        group = conversation_group(conversation.id)
        await self.manager.send_to_group(group, CONVERSATION_CREATED_EVENT, result)
        await self.manager.send_to_group(group, MESSAGE_RECEIVED_EVENT, MessageDto.from_model(notice))
        return result

    @hub_method("UpdateConversation")
    async def update_conversation(self, ctx: HubContext, conversation_id: Any, title: Any) -> None:
        dto = ConversationUpdate.model_validate({"title": title})
        conversation, notice = await self._service(ctx).update_title(
            _uuid_adapter.validate_python(conversation_id), dto.title
        )
        group = conversation_group(conversation.id)
        await self.manager.send_to_group(group, MESSAGE_RECEIVED_EVENT, MessageDto.from_model(notice))
        await self.manager.send_to_group(
            group, CONVERSATION_UPDATED_EVENT, ConversationDto.from_model(conversation, ctx.user_id)
        )

    @hub_method("ArchiveConversation")
    async def archive_conversation(self, ctx: HubContext, conversation_id: Any) -> None:
        conversation = await self._service(ctx).set_archived(
            _uuid_adapter.validate_python(conversation_id), True
        )
        await self.manager.send_to_group(
            conversation_group(conversation.id), CONVERSATION_ARCHIVED_EVENT, conversation.id
        )

    @hub_method("AddParticipants")
    async def add_participants(self, ctx: HubContext, conversation_id: Any, user_ids: Any) -> None:
        dto = ParticipantsAdd.model_validate({"user_ids": user_ids})
        conversation, notices = await self._service(ctx).add_participants(
            _uuid_adapter.validate_python(conversation_id), dto.user_ids
        )
        for participant in conversation.active_participants():
            self.add_user_to_conversation(participant.user_id, conversation.id)
        group = conversation_group(conversation.id)
        for notice in notices:
            await self.manager.send_to_group(group, MESSAGE_RECEIVED_EVENT, MessageDto.from_model(notice))
        await self.manager.send_to_group(
            group, CONVERSATION_UPDATED_EVENT, ConversationDto.from_model(conversation, ctx.user_id)
        )

    @hub_method("LeaveConversation")
    async def leave_conversation(self, ctx: HubContext, conversation_id: Any) -> None:
        conversation, notice = await self._service(ctx).leave(
            _uuid_adapter.validate_python(conversation_id)
        )
        self.remove_user_from_conversation(ctx.user_id, conversation.id)
        await self.manager.send_to_group(
            conversation_group(conversation.id), MESSAGE_RECEIVED_EVENT, MessageDto.from_model(notice)
        )
        await ctx.send_to_user(CONVERSATION_LEFT_EVENT, conversation.id)

    # --- Messages ---

    @hub_method("LoadMessages")
    async def load_messages(self, ctx: HubContext, conversation_id: Any, options: Any = None):
        """Page through a conversation; everything in it counts as read afterwards."""
        service = self._service(ctx)
        cid = _uuid_adapter.validate_python(conversation_id)
        await service.mark_conversation_read(cid)
        items, total = await service.load_messages(
            cid, _load_options(options), max_take=self.max_take
        )
        return LoadResult[MessageDto](
            data=[MessageDto.from_model(m) for m in items], total_count=total
        )

    @hub_method("SendMessage")
    async def send_message(
        self, ctx: HubContext, conversation_id: Any, content: Any, reply_to_message_id: Any = None
    ) -> MessageDto:
        dto = MessageCreate.model_validate(
            {"content": content, "reply_to_message_id": reply_to_message_id}
        )
        message = await self._service(ctx).send_message(
            _uuid_adapter.validate_python(conversation_id), dto.content, dto.reply_to_message_id
        )
        result = MessageDto.from_model(message)
        await self.manager.send_to_group(
            conversation_group(message.conversation_id), MESSAGE_RECEIVED_EVENT, result
        )
        return result

    @hub_method("EditMessage")
    async def edit_message(self, ctx: HubContext, message_id: Any, content: Any) -> bool:
        dto = MessageUpdate.model_validate({"content": content})
        message = await self._service(ctx).edit_message(
            _uuid_adapter.validate_python(message_id), dto.content
        )
        await self.manager.send_to_group(
            conversation_group(message.conversation_id),
            MESSAGE_EDITED_EVENT,
            MessageDto.from_model(message),
        )
        return True

    @hub_method("DeleteMessage")
    async def delete_message(self, ctx: HubContext, message_id: Any) -> bool:
        message = await self._service(ctx).delete_message(_uuid_adapter.validate_python(message_id))
        await self.manager.send_to_group(
            conversation_group(message.conversation_id), MESSAGE_DELETED_EVENT, message.id
        )
        return True

    @hub_method("MarkMessageAsRead")
    async def mark_message_as_read(self, ctx: HubContext, message_id: Any) -> bool:
        message, changed = await self._service(ctx).mark_read(
            _uuid_adapter.validate_python(message_id)
        )
        if changed:
            await self.manager.send_to_group(
                conversation_group(message.conversation_id),
                READ_RECEIPT_EVENT,
                message.id,
                ctx.user_id,
            )
        return changed

    # --- Typing ---

    async def _typing(self, ctx: HubContext, conversation_id: Any, event: str) -> None:
        cid = _uuid_adapter.validate_python(conversation_id)
        if not await self._service(ctx).has_access(cid):
            return
        await self.manager.send_to_group(
            conversation_group(cid),
            event,
            cid,
            ctx.user_id,
            exclude=self._connections_of(ctx.user_id),
        )

    @hub_method("StartTyping")
    async def start_typing(self, ctx: HubContext, conversation_id: Any) -> None:
        await self._typing(ctx, conversation_id, TYPING_STARTED_EVENT)

    @hub_method("StopTyping")
    async def stop_typing(self, ctx: HubContext, conversation_id: Any) -> None:
        await self._typing(ctx, conversation_id, TYPING_STOPPED_EVENT)
