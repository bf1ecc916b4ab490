import asyncio

import httpx
import pytest

from linkup.chats.chat_list import ChatListSynchronizer
from linkup.chats.conversation import ConversationLog, LogState, render_message
from linkup.common.errors import NotFoundError, UploadFailure, ValidationError
from linkup.firebase.storage import FirebaseBlobStore, UploadProgress, UploadState
from linkup.firestore.chats import create_direct_chat, soft_leave_chat
from linkup.models.firestore import Participant

STORAGE_URL = "https://storage.test/v0"


class FakeStorage:
    """Firebase Storage resumable endpoint that accepts or rejects uploads, optionally garbling chunk responses first."""

    def __init__(self, reject=False, garbled=0):
        self.reject = reject
        self.garbled = garbled
        self.names = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        command = request.headers.get("X-Goog-Upload-Command")
        if command == "start":
            self.names.append(request.url.params["name"])
            return httpx.Response(200, headers={"X-Goog-Upload-URL": "https://storage.test/session"})
        if self.garbled:
            self.garbled -= 1
            raise httpx.DecodingError("Malformed chunked response", request=request)
        if self.reject:
            return httpx.Response(403, json={"error": {"message": "Permission denied."}})
        return httpx.Response(200, json={"name": self.names[-1], "downloadTokens": "tok"})


def blob_factory(storage):
    def _factory(id_token):
        return FirebaseBlobStore(
            "bucket",
            base_url=STORAGE_URL,
            id_token=id_token,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(storage)),
        )
    return _factory


@pytest.fixture
async def chat_id(document_store, alice, bob):
    return await create_direct_chat(document_store, alice, Participant(email=bob.email, name=bob.display_name))


@pytest.fixture
async def alice_log(context_for, alice, chat_id):
    log = ConversationLog(context_for(alice), chat_id, blob_factory(FakeStorage()))
    await log.open()
    await log.wait_idle()
    yield log
    log.close()


@pytest.mark.asyncio
async def test_open_goes_loading_then_live(context_for, alice, chat_id):
    log = ConversationLog(context_for(alice), chat_id)
    assert log.state is LogState.CLOSED

    await log.open()
    assert log.state is LogState.LOADING

    await log.wait_idle()
    assert log.state is LogState.LIVE
    assert log.messages == []

    log.close()
    assert log.state is LogState.CLOSED


@pytest.mark.asyncio
async def test_send_text_appears_in_log(alice_log):
    await alice_log.send_text("hello")
    await alice_log.wait_idle()

    [message] = alice_log.messages
    assert (message.kind, message.text, message.is_own) == ("text", "hello", True)
    assert message.author_name == "Alice Smith"
    assert message.avatar_url.startswith("https://api.dicebear.com/8.x/initials/png?seed=alice%20smith")


@pytest.mark.asyncio
async def test_messages_newest_first(alice_log):
    await alice_log.send_text("first")
    await alice_log.send_text("second")
    await alice_log.wait_idle()

    assert [m.text for m in alice_log.messages] == ["second", "first"]


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n"])
async def test_blank_text_is_rejected_without_write(alice_log, document_store, text):
    writes = len(document_store.writes)

    with pytest.raises(ValidationError, match="Message cannot be empty"):
        await alice_log.send_text(text)

    assert len(document_store.writes) == writes


@pytest.mark.asyncio
async def test_concurrent_sends_both_survive(context_for, alice, bob, chat_id, document_store):
    alices = ConversationLog(context_for(alice), chat_id)
    bobs = ConversationLog(context_for(bob), chat_id)

    async with alices, bobs:
        await asyncio.gather(alices.send_text("from alice"), bobs.send_text("from bob"))
        await alices.wait_idle()
        await bobs.wait_idle()

        assert sorted(m.text for m in alices.messages) == ["from alice", "from bob"]
        assert len(bobs.messages) == 2

    assert document_store.listener_count == 0


@pytest.mark.asyncio
async def test_send_emoji_closes_picker(alice_log):
    assert alice_log.toggle_emoji_picker() is True

    await alice_log.send_emoji("🎉")
    await alice_log.wait_idle()

    assert alice_log.emoji_picker_open is False
    assert (alice_log.messages[0].kind, alice_log.messages[0].text) == ("emoji", "🎉")


@pytest.mark.asyncio
async def test_send_image_uploads_then_appends(alice_log, document_store, chat_id):
    message = await alice_log.send_image(b"\x89PNG" * 100, "image/png")
    await alice_log.wait_idle()

    assert alice_log.upload_state is UploadState.COMPLETE
    assert alice_log.upload_progress.download_url == message.content.url
    assert message.content.url == f"{STORAGE_URL}/b/bucket/o/{message.id}?alt=media&token=tok"
    stored = document_store.collections["chats"][chat_id]["messages"][0]
    assert (stored["_id"], stored["text"], stored["image"]) == (message.id, "", message.content.url)
    assert alice_log.messages[0].kind == "image"


@pytest.mark.asyncio
async def test_failed_upload_appends_nothing(context_for, alice, chat_id, document_store):
    log = ConversationLog(context_for(alice), chat_id, blob_factory(FakeStorage(reject=True)))

    async with log:
        with pytest.raises(UploadFailure):
            await log.send_image(b"data")

        assert log.upload_state is UploadState.IDLE
        assert log.upload_progress.state is UploadState.FAILED
        assert document_store.collections["chats"][chat_id]["messages"] == []


@pytest.mark.asyncio
async def test_undecodable_response_returns_upload_to_idle(context_for, alice, chat_id, document_store):
    log = ConversationLog(context_for(alice), chat_id, blob_factory(FakeStorage(garbled=1)))

    async with log:
        with pytest.raises(UploadFailure):
            await log.send_image(b"data")

        assert log.upload_state is UploadState.IDLE
        assert log.upload_progress.state is UploadState.FAILED

        message = await log.send_image(b"data")

        assert log.upload_state is UploadState.COMPLETE
        assert document_store.collections["chats"][chat_id]["messages"][0]["_id"] == message.id


class InterruptedBlobStore:
    """Blob store whose upload stops with ``error`` after the first progress event."""

    def __init__(self, error):
        self.error = error
        self.closed = False

    async def upload(self, data, name, content_type="image/jpeg"):
        yield UploadProgress(state=UploadState.UPLOADING, bytes_transferred=0, total_bytes=len(data))
        raise self.error

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [RuntimeError("socket closed"), asyncio.CancelledError()])
async def test_interrupted_upload_returns_to_idle(context_for, alice, chat_id, document_store, error):
    blob_store = InterruptedBlobStore(error)
    log = ConversationLog(context_for(alice), chat_id, lambda id_token: blob_store)

    async with log:
        with pytest.raises(type(error)):
            await log.send_image(b"data")

        assert log.upload_state is UploadState.IDLE
        assert log.upload_progress.state is UploadState.FAILED
        assert blob_store.closed
        assert document_store.collections["chats"][chat_id]["messages"] == []


@pytest.mark.asyncio
async def test_image_needs_blob_store(context_for, alice, chat_id):
    async with ConversationLog(context_for(alice), chat_id) as log:
        with pytest.raises(UploadFailure):
            await log.send_image(b"data")


@pytest.mark.asyncio
async def test_emoji_picker_back_and_keyboard(alice_log):
    assert alice_log.on_back_pressed() is False

    alice_log.toggle_emoji_picker()
    assert alice_log.on_back_pressed() is True
    assert alice_log.emoji_picker_open is False

    alice_log.toggle_emoji_picker()
    alice_log.on_keyboard_shown()
    assert alice_log.emoji_picker_open is False


@pytest.mark.asyncio
async def test_self_chat_members_deduplicated(context_for, document_store, alice):
    chat_id = await create_direct_chat(document_store, alice, Participant(email=alice.email, name=alice.display_name))

    async with ConversationLog(context_for(alice), chat_id) as log:
        await log.wait_idle()
        assert [p.email for p in log.members()] == [alice.email]


def test_members_before_load(context_for, alice):
    with pytest.raises(NotFoundError):
        ConversationLog(context_for(alice), "chat-1").members()


@pytest.mark.asyncio
async def test_deleted_chat_marks_log_removed(alice_log, document_store, alice, bob, chat_id):
    await soft_leave_chat(document_store, chat_id, alice.email)
    await soft_leave_chat(document_store, chat_id, bob.email)
    await alice_log.wait_idle()

    assert alice_log.removed is True
    assert alice_log.messages == []


@pytest.mark.asyncio
async def test_open_marks_chat_active_in_list(context_for, local_store, alice, chat_id):
    context = context_for(alice)
    chat_list = ChatListSynchronizer(context, local_store)
    await chat_list.start()

    async with ConversationLog(context, chat_id, chat_list=chat_list):
        assert chat_list.active_chat_id == chat_id

    assert chat_list.active_chat_id is None
    chat_list.stop()


def test_render_message_generates_missing_avatar(make_message):
    message = make_message("bob@example.com", "Bob", text="hi")

    rendered = render_message(message, "me@example.com", avatar_size=32)

    assert rendered.is_own is False
    assert "size=32" in rendered.avatar_url
