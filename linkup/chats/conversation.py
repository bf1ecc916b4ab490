"""Conversation Message Log.

Live view of one chat's messages plus the send paths (text, emoji, image).
Appends go through the store's transactional ``append_message`` so two
devices writing at once never drop each other's messages.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable

import structlog

from linkup.chats.avatars import avatar_url
from linkup.common.errors import LinkUpError, NotFoundError, SubscriptionInterrupted, UploadFailure, ValidationError
from linkup.firebase.storage import FirebaseBlobStore, UploadProgress, UploadState
from linkup.firestore.chats import append_message, subscribe_chat
from linkup.firestore.store import Subscription
from linkup.models.firestore import (
    Chat,
    EmojiContent,
    ImageContent,
    Message,
    MessageAuthor,
    MessageContent,
    Participant,
    TextContent,
)
from linkup.models.views import RenderedMessage
from linkup.session.gate import SessionContext

if TYPE_CHECKING:
    from linkup.chats.chat_list import ChatListSynchronizer

logger = structlog.get_logger(__name__)

BlobStoreFactory = Callable[[str], FirebaseBlobStore]


class LogState(str, Enum):
    CLOSED = "closed"
    LOADING = "loading"
    LIVE = "live"


def render_message(message: Message, viewer_email: str, avatar_size: int = 96) -> RenderedMessage:
    content = message.content
    rendered = {
        "id": message.id,
        "created_at": message.created_at,
        "author_id": message.author.id,
        "author_name": message.author.name,
        "avatar_url": message.author.avatar_url or avatar_url(message.author.name, message.author.id, avatar_size),
        "is_own": message.author.id == viewer_email,
    }
    if isinstance(content, TextContent):
        return RenderedMessage(kind="text", text=content.text, **rendered)
    if isinstance(content, ImageContent):
        return RenderedMessage(kind="image", image_url=content.url, **rendered)
    if isinstance(content, EmojiContent):
        return RenderedMessage(kind="emoji", text=content.emoji, **rendered)
    raise TypeError(f"Unknown message content: {type(content).__name__}")


class ConversationLog:
    """
    One open conversation.

    The log subscribes on ``open()`` and releases the subscription on
    ``close()``; use it as an async context manager to release on every
    exit path.

    Usage:
        async with ConversationLog(context, chat_id, blob_store_factory) as log:
            await log.send_text("hello")
            log.messages  # newest first
    """

    def __init__(
        self,
        context: SessionContext,
        chat_id: str,
        blob_store_factory: BlobStoreFactory | None = None,
        chat_list: ChatListSynchronizer | None = None,
        avatar_size: int = 96,
    ):
        self.context = context
        self.chat_id = chat_id
        self.blob_store_factory = blob_store_factory
        self.chat_list = chat_list
        self.avatar_size = avatar_size

        self.state = LogState.CLOSED
        self.chat: Chat | None = None
        self.messages: list[RenderedMessage] = []
        self.error: LinkUpError | None = None
        self.removed = False

        self.upload_state = UploadState.IDLE
        self.upload_progress: UploadProgress | None = None
        self.emoji_picker_open = False

        self._subscription: Subscription | None = None

    async def __aenter__(self) -> "ConversationLog":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def open(self) -> None:
        if self._subscription is not None:
            return
        store = self.context.require_store()
        self.context.require_user()
        self.state = LogState.LOADING
        if self.chat_list is not None:
            await self.chat_list.open_chat(self.chat_id)
        self._subscription = self.context.track(
            subscribe_chat(store, self.chat_id, self._apply, self._on_error)
        )
        logger.info("Conversation opened", chat_id=self.chat_id)

    def close(self) -> None:
        if self._subscription is not None:
            self.context.release(self._subscription)
            self._subscription = None
        if self.chat_list is not None and self.chat_list.active_chat_id == self.chat_id:
            self.chat_list.close_chat()
        self.state = LogState.CLOSED
        self.emoji_picker_open = False

    async def wait_idle(self) -> None:
        if self._subscription is not None:
            await self._subscription.drain()

    def _apply(self, chat: Chat | None) -> None:
        user = self.context.user
        if user is None:
            return
        self.state = LogState.LIVE
        self.error = None
        if chat is None:
            self.chat = None
            self.messages = []
            self.removed = True
            return
        self.chat = chat
        self.removed = False
        self.messages = [render_message(m, user.email, self.avatar_size) for m in chat.messages]

    def _on_error(self, error: Exception) -> None:
        if not isinstance(error, LinkUpError):
            error = SubscriptionInterrupted(str(error))
        logger.warning("Conversation subscription interrupted", chat_id=self.chat_id, error=str(error))
        self.error = error

    def _build(self, content: MessageContent, message_id: str | None = None) -> Message:
        user = self.context.require_user()
        return Message(
            id=message_id or str(uuid.uuid4()),
            content=content,
            created_at=datetime.now(UTC),
            author=MessageAuthor(
                id=user.email,
                name=user.display_name,
                avatar_url=avatar_url(user.display_name, user.email, self.avatar_size),
            ),
        )

    async def _append(self, message: Message) -> Message:
        await append_message(self.context.require_store(), self.chat_id, message)
        return message

    async def send_text(self, text: str) -> Message:
        if not (text or "").strip():
            raise ValidationError("text", "Message cannot be empty")
        return await self._append(self._build(TextContent(text=text)))

    async def send_emoji(self, emoji: str) -> Message:
        if not (emoji or "").strip():
            raise ValidationError("emoji", "Message cannot be empty")
        message = await self._append(self._build(EmojiContent(emoji=emoji)))
        self.emoji_picker_open = False
        return message

    async def send_image(self, data: bytes, content_type: str = "image/jpeg") -> Message:
        """Upload an image and append it as a message once the upload completes.

        Raises:
            UploadFailure: If the upload fails. Nothing is appended and the
                upload state is back to IDLE, as it is for any other error or
                cancellation during the upload.
        """
        if self.blob_store_factory is None:
            raise UploadFailure("No blob store configured for image messages")
        if self.upload_state is UploadState.UPLOADING:
            raise UploadFailure("Another image is still uploading")
        if not data:
            raise ValidationError("image", "Image is empty")

        name = str(uuid.uuid4())
        blob_store = self.blob_store_factory(self.context.id_token)
        self.upload_state = UploadState.UPLOADING
        self.upload_progress = None
        download_url = None
        try:
            async for progress in blob_store.upload(data, name, content_type):
                self.upload_progress = progress
                if progress.state is UploadState.COMPLETE:
                    download_url = progress.download_url
        except BaseException as e:
            logger.warning(
                "Image upload failed", chat_id=self.chat_id, name=name, error=str(e) or type(e).__name__
            )
            transferred = self.upload_progress.bytes_transferred if self.upload_progress else 0
            self.upload_progress = UploadProgress(
                state=UploadState.FAILED, bytes_transferred=transferred, total_bytes=len(data)
            )
            self.upload_state = UploadState.IDLE
            raise
        finally:
            await blob_store.aclose()

        if not download_url:
            self.upload_state = UploadState.IDLE
            raise UploadFailure(f"Upload of {name} ended without a download URL")

        self.upload_state = UploadState.COMPLETE
        return await self._append(self._build(ImageContent(url=download_url), message_id=name))

    def toggle_emoji_picker(self) -> bool:
        self.emoji_picker_open = not self.emoji_picker_open
        return self.emoji_picker_open

    def on_keyboard_shown(self) -> None:
        self.emoji_picker_open = False

    def on_back_pressed(self) -> bool:
        """Close the emoji picker. Returns True if the back press was consumed."""
        if self.emoji_picker_open:
            self.emoji_picker_open = False
            return True
        return False

    def members(self) -> list[Participant]:
        """Participants deduplicated by email."""
        if self.chat is None:
            raise NotFoundError(f"Chat {self.chat_id} not loaded")
        return self.chat.members()
