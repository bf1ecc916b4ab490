"""The single client session the HTTP surface drives.

One process hosts one signed-in user at a time, like the mobile app it
stands in for. The runtime wires the collaborators to the components and
rebuilds the per-user components on every sign-in and sign-out.
"""

from __future__ import annotations

from typing import Callable

import structlog
from fastapi import Request

from linkup.chats.chat_list import ChatListSynchronizer
from linkup.chats.conversation import ConversationLog
from linkup.chats.directory import ChatDirectory
from linkup.common.errors import NotFoundError
from linkup.common.settings import Settings, get_settings
from linkup.firebase.auth_service import FirebaseAuthClient
from linkup.firebase.client import get_firestore_async_client, get_firestore_client
from linkup.firebase.storage import FirebaseBlobStore
from linkup.firestore.store import FirestoreDocumentStore
from linkup.localstore.redis_client import get_redis_client
from linkup.localstore.store import LocalStore
from linkup.localstore.theme import ThemePreference
from linkup.models.session import User
from linkup.session.gate import IdentityGate

logger = structlog.get_logger(__name__)


class ClientRuntime:
    """
    Gate, chat list, directory and open conversations for one device.

    Usage:
        runtime = await build_runtime()
        await runtime.sign_in("a@example.com", "secret")
        log = await runtime.open_conversation(chat_id)
        await runtime.aclose()
    """

    def __init__(
        self,
        gate: IdentityGate,
        local_store: LocalStore,
        blob_store_factory: Callable[[str], FirebaseBlobStore] | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.gate = gate
        self.context = gate.context
        self.local_store = local_store
        self.blob_store_factory = blob_store_factory
        self.theme = ThemePreference(local_store)
        self.conversations: dict[str, ConversationLog] = {}
        self._reset_components()

    def _reset_components(self) -> None:
        self.chat_list = ChatListSynchronizer(self.context, self.local_store, self.settings.preview_length)
        self.directory = ChatDirectory(self.context)

    async def _start_session(self, user: User) -> User:
        await self.chat_list.start()
        return user

    async def sign_in(self, email: str, password: str) -> User:
        await self._close_session()
        return await self._start_session(await self.gate.sign_in(email, password))

    async def sign_up(self, email: str, password: str, display_name: str) -> User:
        await self._close_session()
        return await self._start_session(await self.gate.sign_up(email, password, display_name))

    async def sign_out(self) -> None:
        await self._close_session()

    async def delete_account(self) -> None:
        await self.gate.delete_current_user()
        self._close_conversations()
        self.chat_list.stop()
        self._reset_components()

    async def update_display_name(self, name: str) -> User:
        """Rename the user and restart the chat list under the new membership entry."""
        user = await self.gate.update_display_name(name)
        active_chat_id = self.chat_list.active_chat_id
        self.chat_list.stop()
        self._reset_components()
        self.chat_list.active_chat_id = active_chat_id
        for log in self.conversations.values():
            log.chat_list = self.chat_list
        await self.chat_list.start()
        return user

    async def _close_session(self) -> None:
        if not self.context.is_authenticated:
            return
        self._close_conversations()
        self.chat_list.stop()
        await self.gate.sign_out()
        self._reset_components()

    def _close_conversations(self) -> None:
        for log in self.conversations.values():
            log.close()
        self.conversations.clear()

    async def open_conversation(self, chat_id: str) -> ConversationLog:
        """Open (or return the already open) conversation for ``chat_id``."""
        log = self.conversations.get(chat_id)
        if log is None:
            log = ConversationLog(
                self.context,
                chat_id,
                blob_store_factory=self.blob_store_factory,
                chat_list=self.chat_list,
                avatar_size=self.settings.avatar_size,
            )
            await log.open()
            self.conversations[chat_id] = log
        await log.wait_idle()
        return log

    def close_conversation(self, chat_id: str) -> None:
        log = self.conversations.pop(chat_id, None)
        if log is None:
            raise NotFoundError(f"Conversation {chat_id} is not open")
        log.close()

    async def aclose(self) -> None:
        await self._close_session()
        await self.gate.auth_client.aclose()


async def build_runtime(settings: Settings | None = None) -> ClientRuntime:
    """Wire the Firebase, Firestore and Redis collaborators from settings."""
    settings = settings or get_settings()
    local_store = LocalStore(await get_redis_client())
    auth_client = FirebaseAuthClient(
        settings.firebase_api_key or "",
        base_url=settings.auth_base_url,
        timeout=settings.http_timeout_seconds,
    )

    def store_factory(id_token: str) -> FirestoreDocumentStore:
        return FirestoreDocumentStore(get_firestore_async_client(id_token), get_firestore_client(id_token))

    def blob_store_factory(id_token: str) -> FirebaseBlobStore:
        return FirebaseBlobStore(
            settings.storage_bucket,
            base_url=settings.storage_base_url,
            id_token=id_token,
            timeout=settings.http_timeout_seconds,
        )

    if not settings.firebase_api_key:
        logger.warning("LINKUP_FIREBASE_API_KEY not configured, sign-in will fail")

    runtime = ClientRuntime(IdentityGate(auth_client, store_factory), local_store, blob_store_factory, settings)
    await runtime.theme.load()
    logger.info("Client runtime ready", project=settings.firebase_project_id, theme=runtime.theme.mode.value)
    return runtime


def get_runtime(request: Request) -> ClientRuntime:
    """FastAPI dependency returning the app's runtime."""
    return request.app.state.runtime


def get_current_user(request: Request) -> User:
    """FastAPI dependency that rejects requests made while signed out."""
    return get_runtime(request).context.require_user()
