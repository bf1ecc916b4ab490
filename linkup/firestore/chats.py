"""Functions for reading and writing ``chats`` documents.

A chat document keeps its whole history in a ``messages`` array, newest
first, next to the ``users`` participant array that membership queries
match against.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any, Callable

import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from linkup.common.errors import NotFoundError
from linkup.firestore.store import CHATS, Document, DocumentStore, Subscription
from linkup.models.firestore import Chat, GroupChat, Message, Participant, PersonalChat, to_millis
from linkup.models.session import User

logger = structlog.get_logger(__name__)

_chat_adapter = TypeAdapter(Chat)


def parse_chat_document(chat_id: str, data: dict[str, Any]) -> Chat | None:
    """Validate a stored chat document into a PersonalChat or GroupChat.

    Individual malformed messages are dropped; a document whose shape is
    wrong as a whole is logged and returns None.
    """
    messages = []
    for raw in data.get("messages") or []:
        try:
            messages.append(Message.from_document(raw))
        except (ValueError, TypeError) as e:
            logger.warning("Skipping malformed message", chat_id=chat_id, error=str(e))

    raw_group_name = data.get("groupName") or ""
    if not isinstance(raw_group_name, str):
        logger.warning("Skipping malformed chat document", chat_id=chat_id, error="groupName is not a string")
        return None
    group_name = raw_group_name.strip()
    payload = {
        "kind": "group" if group_name else "personal",
        "chat_id": chat_id,
        "participants": data.get("users") or [],
        "messages": messages,
        "last_updated_at": data.get("lastUpdated"),
    }
    if group_name:
        payload["group_name"] = data["groupName"]
        payload["admins"] = data.get("groupAdmins") or []

    try:
        return _chat_adapter.validate_python(payload)
    except (PydanticValidationError, ValueError) as e:
        logger.warning("Skipping malformed chat document", chat_id=chat_id, error=str(e))
        return None


def parse_chat_documents(documents: list[Document]) -> list[Chat]:
    chats = []
    for document in documents:
        chat = parse_chat_document(document.id, document.data)
        if chat is not None:
            chats.append(chat)
    return chats


async def get_chat(store: DocumentStore, chat_id: str) -> Chat:
    """Fetch and validate one chat.

    Raises:
        NotFoundError: If the document is missing or malformed.
    """
    data = await store.get(CHATS, chat_id)
    chat = parse_chat_document(chat_id, data) if data is not None else None
    if chat is None:
        raise NotFoundError(f"Chat {chat_id} not found")
    return chat


def membership_filter(user: User) -> tuple[str, str, dict]:
    return ("users", "array_contains", user.participant_entry())


def subscribe_chats_for(
    store: DocumentStore,
    user: User,
    on_next: Callable[[list[Chat]], Any],
    on_error: Callable[[Exception], Any] | None = None,
) -> Subscription:
    """Live list of the chats ``user`` is an active member of, most recent first."""

    def _deliver(documents: list[Document]):
        return on_next(parse_chat_documents(documents))

    return store.subscribe_query(
        CHATS,
        [membership_filter(user)],
        ("lastUpdated", "DESCENDING"),
        on_next=_deliver,
        on_error=on_error,
    )


def subscribe_chat(
    store: DocumentStore,
    chat_id: str,
    on_next: Callable[[Chat | None], Any],
    on_error: Callable[[Exception], Any] | None = None,
) -> Subscription:
    """Live view of one chat. ``on_next`` receives None once the document is gone."""

    def _deliver(data: dict[str, Any] | None):
        return on_next(parse_chat_document(chat_id, data) if data is not None else None)

    return store.subscribe_document(CHATS, chat_id, on_next=_deliver, on_error=on_error)


async def list_chats_for(store: DocumentStore, user: User) -> list[Chat]:
    documents = await store.query(CHATS, [membership_filter(user)], ("lastUpdated", "DESCENDING"))
    return parse_chat_documents(documents)


async def find_direct_chat(store: DocumentStore, user: User, other_email: str) -> PersonalChat | None:
    """The existing 1:1 chat between ``user`` and ``other_email``, if any.

    For a self-chat this is the chat that lists the user's email twice.
    """
    for chat in await list_chats_for(store, user):
        if not isinstance(chat, PersonalChat):
            continue
        emails = [p.email for p in chat.participants]
        if other_email == user.email:
            if emails == [user.email, user.email]:
                return chat
        elif other_email in emails:
            return chat
    return None


async def create_direct_chat(
    store: DocumentStore, user: User, other: Participant, now: datetime | None = None
) -> str:
    """Create a new 1:1 chat document and return its id."""
    now_ms = to_millis(now or datetime.now(UTC))
    chat_id = store.new_id()
    await store.set(
        CHATS,
        chat_id,
        {
            "lastUpdated": now_ms,
            "groupName": "",
            "users": [
                user.participant_entry(),
                {"email": other.email, "name": other.name, "deletedFromChat": False},
            ],
            "lastAccess": [
                {"email": user.email, "date": now_ms},
                {"email": other.email, "date": ""},
            ],
            "messages": [],
        },
    )
    logger.info("Direct chat created", chat_id=chat_id, owner=user.email, other=other.email)
    return chat_id


async def create_group_chat(
    store: DocumentStore,
    user: User,
    group_name: str,
    members: list[Participant],
    now: datetime | None = None,
) -> str:
    """Create a group chat with ``user`` first and as its only admin."""
    chat_id = store.new_id()
    users = [user.participant_entry()]
    users.extend({"email": m.email, "name": m.name, "deletedFromChat": False} for m in members)
    await store.set(
        CHATS,
        chat_id,
        {
            "lastUpdated": to_millis(now or datetime.now(UTC)),
            "users": users,
            "messages": [],
            "groupName": group_name,
            "groupAdmins": [user.email],
        },
    )
    logger.info("Group chat created", chat_id=chat_id, owner=user.email, member_count=len(users))
    return chat_id


async def soft_leave_chat(store: DocumentStore, chat_id: str, email: str) -> bool:
    """Mark ``email`` as removed from a chat, deleting it once nobody is left.

    Reads the document fresh so the merge does not resurrect entries another
    member removed in the meantime.

    Returns:
        True if the document was deleted.
    """
    data = await store.get(CHATS, chat_id)
    if data is None:
        logger.info("Chat already gone", chat_id=chat_id)
        return True

    users = [dict(entry) for entry in data.get("users") or []]
    for entry in users:
        if entry.get("email") == email:
            entry["deletedFromChat"] = True

    if all(entry.get("deletedFromChat") for entry in users):
        await store.delete(CHATS, chat_id)
        logger.info("Chat deleted, no members left", chat_id=chat_id)
        return True

    await store.set_merge(CHATS, chat_id, {"users": users})
    logger.info("Left chat", chat_id=chat_id, email=email)
    return False


async def soft_leave_chats(store: DocumentStore, chat_ids: list[str], email: str) -> list[bool]:
    """Leave several chats concurrently and wait for every write to settle.

    Raises:
        The first failure, after all the other writes have finished.
    """
    results = await asyncio.gather(
        *(soft_leave_chat(store, chat_id, email) for chat_id in chat_ids),
        return_exceptions=True,
    )
    for chat_id, result in zip(chat_ids, results):
        if isinstance(result, Exception):
            logger.error("Failed to leave chat", chat_id=chat_id, error=str(result))
    for result in results:
        if isinstance(result, Exception):
            raise result
    return list(results)


async def append_message(store: DocumentStore, chat_id: str, message: Message) -> int:
    return await store.append_message(chat_id, message.to_document(), to_millis(message.created_at))
