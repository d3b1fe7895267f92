import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from hbg_authentication.models import User
from hbg_authorization import auth_required
from hbg_core.config import HbgSettings, get_settings
from hbg_core.exceptions import NotFoundException
from hbg_core.schemas.parameter import LoadOptions
from hbg_core.schemas.response import LoadResult
from hbg_db import get_db
from sqlalchemy.ext.asyncio import AsyncSession

from .hub import (
    CONVERSATION_ARCHIVED_EVENT,
    CONVERSATION_CREATED_EVENT,
    MESSAGE_EDITED_EVENT,
    MESSAGE_RECEIVED_EVENT,
    ChatHub,
    conversation_group,
)
from .schemas import (
    ConversationCreate,
    ConversationDto,
    ConversationLoadOptions,
    MessageCreate,
    MessageDto,
    MessageUpdate,
)
from .service import ChatService

router = APIRouter(prefix="/api/chat", tags=["chat"])


def get_chat_service(
    user: User = Depends(auth_required), db: AsyncSession = Depends(get_db)
) -> ChatService:
    return ChatService(db, user.subject_id, user.username)


def get_chat_hub(request: Request) -> ChatHub | None:
    """The live hub of the app, when it serves one; REST changes are pushed through it."""
    return getattr(request.app.state, "contacts_hub", None)


# --- Conversations ---


@router.get("/conversations", response_model=LoadResult[ConversationDto])
async def list_conversations(
    options: Annotated[ConversationLoadOptions, Query()],
    service: ChatService = Depends(get_chat_service),
    settings: HbgSettings = Depends(get_settings),
):
    items, total = await service.load_conversations(
        options, include_archived=options.include_archived, max_take=settings.MAX_TAKE
    )
    return LoadResult[ConversationDto](
        data=[ConversationDto.from_model(c, service.user_id) for c in items],
        total_count=total,
    )


@router.post(
    "/conversations", response_model=ConversationDto, status_code=status.HTTP_201_CREATED
)
async def create_conversation(
    payload: ConversationCreate,
    service: ChatService = Depends(get_chat_service),
    hub: ChatHub | None = Depends(get_chat_hub),
):
    conversation, notice = await service.create_conversation(payload)
    result = ConversationDto.from_model(conversation, service.user_id)
    if hub is not None and notice is not None:
        for participant in conversation.active_participants():
            hub.add_user_to_conversation(participant.user_id, conversation.id)
        group = conversation_group(conversation.id)
        await hub.manager.send_to_group(group, CONVERSATION_CREATED_EVENT, result)
        await hub.manager.send_to_group(group, MESSAGE_RECEIVED_EVENT, MessageDto.from_model(notice))
    return result


@router.get("/conversations/{conversation_id}", response_model=ConversationDto)
async def get_conversation(
    conversation_id: uuid.UUID,
    service: ChatService = Depends(get_chat_service),
):
    conversation = await service.get_conversation(conversation_id)
    return ConversationDto.from_model(conversation, service.user_id)


@router.post("/conversations/{conversation_id}/read")
async def mark_conversation_read(
    conversation_id: uuid.UUID,
    service: ChatService = Depends(get_chat_service),
) -> dict[str, int]:
    return {"marked": await service.mark_conversation_read(conversation_id)}


@router.post("/conversations/{conversation_id}/archive", response_model=ConversationDto)
async def archive_conversation(
    conversation_id: uuid.UUID,
    service: ChatService = Depends(get_chat_service),
    hub: ChatHub | None = Depends(get_chat_hub),
):
    conversation = await service.set_archived(conversation_id, True)
    if hub is not None:
        await hub.manager.send_to_group(
            conversation_group(conversation.id), CONVERSATION_ARCHIVED_EVENT, conversation.id
        )
    return ConversationDto.from_model(conversation, service.user_id)


@router.post("/conversations/{conversation_id}/unarchive", response_model=ConversationDto)
async def unarchive_conversation(
    conversation_id: uuid.UUID,
    service: ChatService = Depends(get_chat_service),
):
    conversation = await service.set_archived(conversation_id, False)
    return ConversationDto.from_model(conversation, service.user_id)


# --- Messages ---


@router.get(
    "/conversations/{conversation_id}/messages", response_model=LoadResult[MessageDto]
)
async def list_messages(
    conversation_id: uuid.UUID,
    options: Annotated[LoadOptions, Query()],
    service: ChatService = Depends(get_chat_service),
    settings: HbgSettings = Depends(get_settings),
):
    items, total = await service.load_messages(
        conversation_id, options, max_take=settings.MAX_TAKE
    )
    return LoadResult[MessageDto](
        data=[MessageDto.from_model(m) for m in items], total_count=total
    )


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageDto,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: uuid.UUID,
    payload: MessageCreate,
    service: ChatService = Depends(get_chat_service),
    hub: ChatHub | None = Depends(get_chat_hub),
):
    message = await service.send_message(
        conversation_id, payload.content, payload.reply_to_message_id
    )
    result = MessageDto.from_model(message)
    if hub is not None:
        await hub.manager.send_to_group(
            conversation_group(conversation_id), MESSAGE_RECEIVED_EVENT, result
        )
    return result


@router.put(
    "/conversations/{conversation_id}/messages/{message_id}", response_model=MessageDto
)
async def edit_message(
    conversation_id: uuid.UUID,
    message_id: uuid.UUID,
    payload: MessageUpdate,
    service: ChatService = Depends(get_chat_service),
    hub: ChatHub | None = Depends(get_chat_hub),
):
    message, _ = await service.get_message(message_id)
    if message.conversation_id != conversation_id:
        raise NotFoundException(f"Message {message_id} not found")
    message = await service.edit_message(message_id, payload.content)
    result = MessageDto.from_model(message)
    if hub is not None:
        await hub.manager.send_to_group(
            conversation_group(conversation_id), MESSAGE_EDITED_EVENT, result
        )
    return result
