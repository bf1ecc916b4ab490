"""Tests for the conversation endpoints: open, send, images, close."""

import pytest

BOB = "bob@example.com"


@pytest.fixture
def chat_id(client, register):
    register(BOB, "Bob Jones")
    register("alice@example.com", "Alice Smith")
    return client.post("/api/v1/chats/direct", json={"email": BOB}).json()["chat_id"]


def test_open_conversation_is_live(client, chat_id):
    response = client.post(f"/api/v1/chats/{chat_id}/open")

    assert response.status_code == 200
    assert response.json()["state"] == "live"
    assert response.json()["messages"] == []
    assert response.json()["upload_state"] == "idle"


def test_send_text_and_emoji(client, chat_id):
    text = client.post(f"/api/v1/chats/{chat_id}/messages", json={"text": "hello"})
    emoji = client.post(f"/api/v1/chats/{chat_id}/messages", json={"emoji": "👋"})

    assert text.status_code == 201
    assert (text.json()["kind"], text.json()["text"], text.json()["is_own"]) == ("text", "hello", True)
    assert (emoji.json()["kind"], emoji.json()["text"]) == ("emoji", "👋")

    messages = client.get(f"/api/v1/chats/{chat_id}/messages").json()["messages"]
    assert [m["text"] for m in messages] == ["👋", "hello"]


@pytest.mark.parametrize("payload", [{}, {"text": "a", "emoji": "b"}])
def test_send_needs_exactly_one_kind(client, chat_id, payload):
    assert client.post(f"/api/v1/chats/{chat_id}/messages", json=payload).status_code == 422


def test_blank_message_rejected(client, chat_id, document_store):
    response = client.post(f"/api/v1/chats/{chat_id}/messages", json={"text": "   "})

    assert response.status_code == 400
    assert response.json()["message"] == "Message cannot be empty"
    assert document_store.collections["chats"][chat_id]["messages"] == []


def test_send_image(client, chat_id, storage_endpoint):
    response = client.post(
        f"/api/v1/chats/{chat_id}/images",
        content=b"\x89PNG\r\n" + b"0" * 1024,
        headers={"Content-Type": "image/png"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["kind"] == "image"
    assert body["id"] == storage_endpoint.uploads[0]
    assert body["image_url"].endswith(f"/o/{body['id']}?alt=media&token=tok")

    conversation = client.get(f"/api/v1/chats/{chat_id}/messages").json()
    assert conversation["upload_state"] == "complete"
    assert conversation["messages"][0]["image_url"] == body["image_url"]


def test_empty_image_rejected(client, chat_id):
    response = client.post(f"/api/v1/chats/{chat_id}/images", content=b"")

    assert response.status_code == 400
    assert response.json()["field"] == "image"


def test_close_conversation(client, chat_id):
    client.post(f"/api/v1/chats/{chat_id}/open")

    assert client.post(f"/api/v1/chats/{chat_id}/close").status_code == 204
    assert client.post(f"/api/v1/chats/{chat_id}/close").status_code == 404


def test_message_to_missing_chat(client, chat_id):
    response = client.post("/api/v1/chats/missing/messages", json={"text": "hello"})

    assert response.status_code == 404
