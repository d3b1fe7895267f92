import pytest
from hbg_contacts import ChatHub
from hbg_db import db as db_module
from httpx import ASGITransport, AsyncClient

from .conftest import build_app, connect, service_for

pytestmark = pytest.mark.asyncio


async def test_list_conversations(alice_client, direct, group):
    response = await alice_client.get("/api/chat/conversations")

    assert response.status_code == 200
    body = response.json()
    assert body["total_count"] == 2
    assert {c["id"] for c in body["data"]} == {str(direct.id), str(group.id)}


async def test_list_conversations_includes_archived_on_request(alice_client, direct, group):
    archived = await alice_client.post(f"/api/chat/conversations/{direct.id}/archive")
    assert archived.json()["is_active"] is False

    default = await alice_client.get("/api/chat/conversations")
    everything = await alice_client.get(
        "/api/chat/conversations", params={"include_archived": "true"}
    )

    assert [c["id"] for c in default.json()["data"]] == [str(group.id)]
    assert everything.json()["total_count"] == 2


async def test_create_group_conversation(alice_client, init_test_db):  # noqa: ARG001
    response = await alice_client.post(
        "/api/chat/conversations",
        json={"participant_ids": ["bob", "carol"], "title": "Launch"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["type"] == "GROUP"
    assert body["last_message_preview"] == "alice created the group"
    assert sorted(body["participant_ids"]) == ["1", "bob", "carol"]


async def test_create_group_without_title_is_422(alice_client, init_test_db):  # noqa: ARG001
    response = await alice_client.post(
        "/api/chat/conversations", json={"participant_ids": ["bob", "carol"]}
    )

    assert response.status_code == 422
    assert response.json()["detail"] == "Group conversations must have a title"


async def test_send_and_list_messages(alice_client, direct):
    sent = await alice_client.post(
        f"/api/chat/conversations/{direct.id}/messages", json={"content": "Hi Bob"}
    )
    assert sent.status_code == 201

    listed = await alice_client.get(
        f"/api/chat/conversations/{direct.id}/messages", params={"take": 1, "sort": "-sent_at"}
    )

    assert listed.status_code == 200
    body = listed.json()
    assert body["total_count"] == 2
    assert [m["content"] for m in body["data"]] == ["Hi Bob"]


async def test_edit_message(alice_client, direct):
    sent = await alice_client.post(
        f"/api/chat/conversations/{direct.id}/messages", json={"content": "Helo"}
    )
    message_id = sent.json()["id"]

    edited = await alice_client.put(
        f"/api/chat/conversations/{direct.id}/messages/{message_id}", json={"content": "Hello"}
    )

    assert edited.status_code == 200
    assert edited.json()["content"] == "Hello"
    assert edited.json()["edited_at"] is not None


async def test_edit_message_under_wrong_conversation_is_404(alice_client, direct, group):
    sent = await alice_client.post(
        f"/api/chat/conversations/{direct.id}/messages", json={"content": "Here"}
    )

    response = await alice_client.put(
        f"/api/chat/conversations/{group.id}/messages/{sent.json()['id']}",
        json={"content": "There"},
    )

    assert response.status_code == 404


async def test_stranger_gets_403(carol_client, direct):
    conversation = await carol_client.get(f"/api/chat/conversations/{direct.id}")
    messages = await carol_client.get(f"/api/chat/conversations/{direct.id}/messages")

    assert conversation.status_code == 403
    assert messages.status_code == 403
    assert conversation.json()["detail"] == "You don't have access to this conversation"


async def test_mark_conversation_read(alice_client, db_session, bob, direct):
    await service_for(db_session, bob).send_message(direct.id, "Ping")

    response = await alice_client.post(f"/api/chat/conversations/{direct.id}/read")

    # the opening system message and bob's text
    assert response.json() == {"marked": 2}
    conversation = await alice_client.get(f"/api/chat/conversations/{direct.id}")
    assert conversation.json()["unread_count"] == 0


async def test_rest_message_is_pushed_through_the_hub(db_session, alice, bob, direct):  # noqa: ARG001
    hub = ChatHub(db_module.get_session_factory())
    bob_conn = await connect(hub, "b1", bob)
    transport = ASGITransport(app=build_app(alice, hub))

    async with AsyncClient(transport=transport, base_url="http://test") as client:
        sent = await client.post(
            f"/api/chat/conversations/{direct.id}/messages", json={"content": "Via REST"}
        )

    [event] = bob_conn.websocket.events("MessageReceived")
    assert event["arguments"][0]["id"] == sent.json()["id"]
