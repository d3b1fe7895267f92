import uuid

import pytest
from hbg_contacts import ConversationType, MessageType
from hbg_contacts.models import SYSTEM_SENDER, message_preview
from hbg_contacts.schemas import ConversationCreate
from hbg_core.exceptions import (
    AccessDeniedException,
    NotFoundException,
    ValidationFailedException,
)
from hbg_core.schemas.parameter import LoadOptions

from .conftest import service_for

pytestmark = pytest.mark.asyncio


async def test_direct_conversation_starts_with_system_message(db_session, alice, bob):
    conversation, notice = await service_for(db_session, alice).create_conversation(
        ConversationCreate(participant_ids=[bob.subject_id])
    )

    assert conversation.type == ConversationType.DIRECT
    assert conversation.title is None
    assert sorted(p.user_id for p in conversation.participants) == ["1", "2"]
    assert notice.type == MessageType.SYSTEM
    assert notice.sender_user_id == SYSTEM_SENDER
    assert notice.content == "Conversation started"
    assert conversation.last_message_preview == "Conversation started"


async def test_direct_conversation_is_reused(db_session, alice, bob, direct):
    again, notice = await service_for(db_session, bob).create_conversation(
        ConversationCreate(participant_ids=[alice.subject_id])
    )

    assert again.id == direct.id
    assert notice is None


async def test_conversation_with_yourself_is_refused(db_session, alice):
    with pytest.raises(ValidationFailedException, match="with yourself"):
        await service_for(db_session, alice).create_conversation(
            ConversationCreate(participant_ids=[alice.subject_id])
        )


async def test_group_needs_a_title(db_session, alice, bob, carol):
    with pytest.raises(ValidationFailedException, match="must have a title"):
        await service_for(db_session, alice).create_conversation(
            ConversationCreate(participant_ids=[bob.subject_id, carol.subject_id])
        )


async def test_group_creation_names_its_creator(db_session, alice, group):
    [notice] = await service_for(db_session, alice).messages(group.id).fetch(db_session)

    assert group.type == ConversationType.GROUP
    assert group.title == "Design team"
    assert notice.content == "alice created the group"


async def test_stranger_cannot_open_conversation(db_session, carol, direct):
    with pytest.raises(AccessDeniedException, match="don't have access"):
        await service_for(db_session, carol).get_conversation(direct.id)


async def test_missing_conversation(db_session, alice, init_test_db):  # noqa: ARG001
    with pytest.raises(NotFoundException):
        await service_for(db_session, alice).get_conversation(uuid.uuid4())


async def test_send_message_updates_preview_and_unread_counts(db_session, alice, bob, group):
    message = await service_for(db_session, alice).send_message(group.id, "  Hi all  ")

    assert message.content == "Hi all"
    assert [r.user_id for r in message.read_receipts] == ["1"]
    conversation = await service_for(db_session, alice).get_conversation(group.id)
    assert conversation.last_message_preview == "Hi all"
    assert {p.user_id: p.unread_count for p in conversation.participants} == {
        "1": 0,
        "2": 1,
        "3": 1,
    }


async def test_long_message_preview_is_truncated():
    preview = message_preview("x" * 150)

    assert len(preview) == 100
    assert preview.endswith("...")
    assert message_preview("short") == "short"


async def test_empty_message_is_refused(db_session, alice, direct):
    with pytest.raises(ValidationFailedException, match="cannot be empty"):
        await service_for(db_session, alice).send_message(direct.id, "   ")


async def test_archived_conversation_refuses_messages(db_session, alice, direct):
    service = service_for(db_session, alice)
    await service.set_archived(direct.id, True)

    with pytest.raises(ValidationFailedException, match="archived conversation"):
        await service.send_message(direct.id, "Anyone?")

    await service.set_archived(direct.id, False)
    assert (await service.send_message(direct.id, "Back")).content == "Back"


async def test_archived_conversations_are_hidden_by_default(db_session, alice, direct, group):
    service = service_for(db_session, alice)
    await service.set_archived(direct.id, True)

    visible, total = await service.load_conversations(LoadOptions())
    everything, _ = await service.load_conversations(LoadOptions(), include_archived=True)

    assert [c.id for c in visible] == [group.id]
    assert total == 1
    assert {c.id for c in everything} == {direct.id, group.id}


async def test_reply_must_target_same_conversation(db_session, alice, direct, group):
    service = service_for(db_session, alice)
    elsewhere = await service.send_message(group.id, "In the group")

    with pytest.raises(NotFoundException):
        await service.send_message(direct.id, "Reply", elsewhere.id)

    original = await service.send_message(direct.id, "Question")
    reply = await service.send_message(direct.id, "Answer", original.id)
    assert reply.reply_to_message_id == original.id


async def test_only_sender_edits_and_deletes(db_session, alice, bob, direct):
    message = await service_for(db_session, alice).send_message(direct.id, "Draft")

    with pytest.raises(AccessDeniedException, match="only edit your own"):
        await service_for(db_session, bob).edit_message(message.id, "Hijack")
    with pytest.raises(AccessDeniedException, match="only delete your own"):
        await service_for(db_session, bob).delete_message(message.id)

    edited = await service_for(db_session, alice).edit_message(message.id, "Final")
    assert edited.content == "Final"
    assert edited.edited_at is not None


async def test_delete_is_soft(db_session, alice, direct):
    service = service_for(db_session, alice)
    message = await service.send_message(direct.id, "Oops")

    deleted = await service.delete_message(message.id)

    assert deleted.is_deleted is True
    assert deleted.content == "Message deleted"
    with pytest.raises(ValidationFailedException, match="no longer be changed"):
        await service.edit_message(message.id, "Again")


async def test_mark_read_is_recorded_once(db_session, alice, bob, direct):
    message = await service_for(db_session, alice).send_message(direct.id, "Ping")
    bob_service = service_for(db_session, bob)

    _, first = await bob_service.mark_read(message.id)
    _, second = await bob_service.mark_read(message.id)

    assert (first, second) == (True, False)
    assert sorted(r.user_id for r in message.read_receipts) == ["1", "2"]
    conversation = await bob_service.get_conversation(direct.id)
    assert conversation.participant(bob.subject_id).unread_count == 0


async def test_mark_conversation_read(db_session, alice, bob, direct):
    alice_service = service_for(db_session, alice)
    await alice_service.send_message(direct.id, "One")
    await alice_service.send_message(direct.id, "Two")

    marked = await service_for(db_session, bob).mark_conversation_read(direct.id)

    # the two texts and the opening system message
    assert marked == 3
    messages, total = await service_for(db_session, bob).load_messages(direct.id, LoadOptions())
    assert total == 3
    assert all(bob.subject_id in [r.user_id for r in m.read_receipts] for m in messages)
    assert [m.content for m in messages] == ["Conversation started", "One", "Two"]


async def test_messages_page_with_load_options(db_session, alice, direct):
    service = service_for(db_session, alice)
    for text in ("a", "b", "c"):
        await service.send_message(direct.id, text)

    newest, total = await service.load_messages(
        direct.id, LoadOptions(take=2, sort="-sent_at")
    )

    assert total == 4
    assert [m.content for m in newest] == ["c", "b"]


async def test_group_rename_and_participants(db_session, alice, bob, group):
    service = service_for(db_session, alice)

    conversation, notice = await service.update_title(group.id, "Jewelry team")
    assert conversation.title == "Jewelry team"
    assert notice.content == 'alice changed the group title to "Jewelry team"'

    conversation, notices = await service.add_participants(group.id, ["dave", bob.subject_id])
    assert [n.content for n in notices] == ["alice added dave to the group"]
    assert sorted(p.user_id for p in conversation.active_participants()) == ["1", "2", "3", "dave"]


async def test_direct_conversation_has_no_title_or_new_members(db_session, alice, direct):
    service = service_for(db_session, alice)

    with pytest.raises(ValidationFailedException, match="Only group"):
        await service.update_title(direct.id, "Chat")
    with pytest.raises(ValidationFailedException, match="group conversations"):
        await service.add_participants(direct.id, ["dave"])
    with pytest.raises(ValidationFailedException, match="Can only leave group"):
        await service.leave(direct.id)


async def test_leaving_a_group(db_session, bob, carol, group):
    conversation, notice = await service_for(db_session, carol).leave(group.id)

    assert notice.content == "carol left the group"
    assert sorted(p.user_id for p in conversation.active_participants()) == ["1", "2"]
    with pytest.raises(AccessDeniedException):
        await service_for(db_session, carol).get_conversation(group.id)
    with pytest.raises(ValidationFailedException, match="at least 2 participants"):
        await service_for(db_session, bob).leave(group.id)


async def test_former_member_can_be_added_back(db_session, alice, carol, group):
    await service_for(db_session, carol).leave(group.id)

    conversation, notices = await service_for(db_session, alice).add_participants(
        group.id, [carol.subject_id]
    )

    assert len(notices) == 1
    assert conversation.participant(carol.subject_id) is not None
    assert await service_for(db_session, carol).has_access(group.id)
