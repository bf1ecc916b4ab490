"""Chat List Synchronizer.

Keeps the signed-in user's chat list live, derives the rows shown on the
chats screen and owns the unread counters, the selection and soft-delete.
"""

from __future__ import annotations

import structlog

from linkup.common.errors import LinkUpError, SubscriptionInterrupted
from linkup.chats.summaries import summarize
from linkup.chats.unread import UnreadTracker
from linkup.firestore.chats import get_chat, soft_leave_chat, soft_leave_chats, subscribe_chats_for
from linkup.firestore.store import Subscription
from linkup.localstore.store import LocalStore
from linkup.models.firestore import Chat
from linkup.models.views import ChatSummary
from linkup.session.gate import SessionContext

logger = structlog.get_logger(__name__)


class ChatListSynchronizer:
    """
    Live chat list for the current user.

    Usage:
        chat_list = ChatListSynchronizer(context, local_store)
        await chat_list.start()
        chat_list.summaries   # rows, most recent first
        await chat_list.open_chat(chat_id)
        chat_list.stop()
    """

    def __init__(self, context: SessionContext, local_store: LocalStore, preview_length: int = 20):
        self.context = context
        self.local_store = local_store
        self.preview_length = preview_length
        self.chats: list[Chat] = []
        self.loading = True
        self.error: LinkUpError | None = None
        self.active_chat_id: str | None = None
        self.unread: UnreadTracker | None = None
        self._selected: list[str] = []
        self._subscription: Subscription | None = None

    @property
    def is_running(self) -> bool:
        return self._subscription is not None and not self._subscription.closed

    async def start(self) -> None:
        """Open the one live subscription for the current user's chats."""
        if self.is_running:
            return
        user = self.context.require_user()
        store = self.context.require_store()
        self.unread = UnreadTracker(self.local_store, user.email)
        await self.unread.load()
        self._subscription = self.context.track(
            subscribe_chats_for(store, user, self.apply_snapshot, self._on_error)
        )
        logger.info("Chat list started", email=user.email)

    def stop(self) -> None:
        if self._subscription is not None:
            self.context.release(self._subscription)
            self._subscription = None

    async def wait_idle(self) -> None:
        """Wait until every snapshot delivered so far has been applied."""
        if self._subscription is not None:
            await self._subscription.drain()

    async def apply_snapshot(self, chats: list[Chat]) -> None:
        self.chats = list(chats)
        self.loading = False
        self.error = None
        if self.unread is not None:
            await self.unread.apply(self.chats, self.active_chat_id)

    def _on_error(self, error: Exception) -> None:
        if not isinstance(error, LinkUpError):
            error = SubscriptionInterrupted(str(error))
        logger.warning("Chat list subscription interrupted", error=str(error))
        self.error = error

    @property
    def summaries(self) -> list[ChatSummary]:
        """Rows for the default view. Chats without messages are hidden."""
        viewer = self.context.require_user().email
        return [
            summarize(chat, viewer, self.count_for(chat.chat_id), self.preview_length)
            for chat in self.chats
            if chat.messages
        ]

    def search(self, text: str) -> list[ChatSummary]:
        needle = (text or "").strip().lower()
        if not needle:
            return self.summaries
        return [summary for summary in self.summaries if needle in summary.name.lower()]

    def count_for(self, chat_id: str) -> int:
        return self.unread.count_for(chat_id) if self.unread is not None else 0

    @property
    def badge(self) -> int:
        return self.unread.badge if self.unread is not None else 0

    async def open_chat(self, chat_id: str) -> None:
        """Make ``chat_id`` the active chat and zero its unread count."""
        self.active_chat_id = chat_id
        if self.unread is not None:
            await self.unread.reset(chat_id)

    def close_chat(self) -> None:
        self.active_chat_id = None

    @property
    def selected(self) -> list[str]:
        return list(self._selected)

    def toggle_selection(self, chat_id: str) -> bool:
        """Select or deselect a chat. Returns True if it is now selected."""
        if chat_id in self._selected:
            self._selected.remove(chat_id)
            return False
        self._selected.append(chat_id)
        return True

    def clear_selection(self) -> None:
        self._selected.clear()

    async def delete_selected(self) -> list[str]:
        """Soft-leave every selected chat, then clear the selection.

        Returns:
            Ids of the chats whose documents were deleted outright.
        """
        chat_ids = self.selected
        if not chat_ids:
            return []
        user = self.context.require_user()
        try:
            results = await soft_leave_chats(self.context.require_store(), chat_ids, user.email)
        finally:
            self.clear_selection()
        return [chat_id for chat_id, deleted in zip(chat_ids, results) if deleted]

    async def leave_chat(self, chat_id: str) -> bool:
        user = self.context.require_user()
        deleted = await soft_leave_chat(self.context.require_store(), chat_id, user.email)
        if chat_id in self._selected:
            self._selected.remove(chat_id)
        return deleted

    async def chat_info(self, chat_id: str) -> Chat:
        """The chat as last synced, or a fresh read when it is not in the list."""
        for chat in self.chats:
            if chat.chat_id == chat_id:
                return chat
        return await get_chat(self.context.require_store(), chat_id)
