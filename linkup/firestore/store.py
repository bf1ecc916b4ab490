"""Document Store collaborator backed by Cloud Firestore.

Reads, writes and transactions go through the async client. Live listeners
use the sync client's ``on_snapshot``, whose callbacks fire on a background
thread and are handed to the event loop with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from typing import Any, Awaitable, Callable, NamedTuple, Protocol, Sequence

import structlog
from google.api_core.exceptions import Aborted
from google.cloud import firestore
from google.cloud.firestore_v1.async_client import AsyncClient
from google.cloud.firestore_v1.async_transaction import async_transactional
from google.cloud.firestore_v1.base_query import FieldFilter

from linkup.common.errors import NotFoundError, SubscriptionInterrupted, WriteConflict

logger = structlog.get_logger(__name__)

CHATS = "chats"
USERS = "users"


class Document(NamedTuple):
    id: str
    data: dict[str, Any]


Filter = tuple[str, str, Any]
OrderBy = tuple[str, str]
Callback = Callable[[Any], Awaitable[None] | None]

_CLOSED = object()


class Subscription:
    """
    Disposable handle over a live listener.

    Values are delivered in arrival order. With an ``on_next`` callback each
    value is handed to it (awaited when it is a coroutine) and the next value
    waits until it returns. Without one the subscription is an async iterator.

    Usage:
        async with store.subscribe_document("chats", chat_id, on_next=render) as sub:
            ...
    """

    def __init__(
        self,
        on_next: Callback | None = None,
        on_error: Callback | None = None,
        unsubscribe: Callable[[], None] | None = None,
    ):
        self._on_next = on_next
        self._on_error = on_error
        self._unsubscribe = unsubscribe
        self._queue: asyncio.Queue = asyncio.Queue()
        self._pump: asyncio.Task | None = None
        self.closed = False
        if on_next is not None:
            self._pump = asyncio.get_running_loop().create_task(self._run())

    def bind(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe

    def push(self, value: Any) -> None:
        if not self.closed:
            self._queue.put_nowait(("value", value))

    def fail(self, error: Exception) -> None:
        if not self.closed:
            self._queue.put_nowait(("error", error))

    async def drain(self) -> None:
        """Wait until every value pushed so far has been handled."""
        if self._pump is not None and not self.closed:
            await self._queue.join()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._unsubscribe is not None:
            try:
                self._unsubscribe()
            except Exception as e:
                logger.warning("Listener did not unsubscribe cleanly", error=str(e))
        if self._pump is not None:
            self._pump.cancel()
        else:
            self._queue.put_nowait(("closed", _CLOSED))

    async def _run(self) -> None:
        while True:
            kind, payload = await self._queue.get()
            try:
                handler = self._on_next if kind == "value" else self._on_error
                if handler is None:
                    logger.warning("Listener error with no handler", error=str(payload))
                    continue
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception("Snapshot handler failed", error=str(e))
            finally:
                self._queue.task_done()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        kind, payload = await self._queue.get()
        if kind == "closed":
            raise StopAsyncIteration
        if kind == "error":
            raise payload
        return payload

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class DocumentStore(Protocol):
    """The operations the chat client needs from its document database."""

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    async def set_merge(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...

    def new_id(self) -> str: ...

    async def query(
        self, collection: str, filters: Sequence[Filter] = (), order_by: OrderBy | None = None
    ) -> list[Document]: ...

    def subscribe_document(
        self, collection: str, doc_id: str, on_next: Callback, on_error: Callback | None = None
    ) -> Subscription: ...

    def subscribe_query(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: OrderBy | None,
        on_next: Callback,
        on_error: Callback | None = None,
    ) -> Subscription: ...

    async def append_message(self, chat_id: str, message: dict[str, Any], updated_at_ms: int) -> int: ...


class FirestoreDocumentStore:
    """
    DocumentStore on google-cloud-firestore.

    Usage:
        store = FirestoreDocumentStore(get_firestore_async_client(token), get_firestore_client(token))
        await store.set("users", email, profile.to_document())
    """

    def __init__(self, client: AsyncClient, watch_client: firestore.Client | None = None, max_attempts: int = 5):
        self.client = client
        self.watch_client = watch_client
        self.max_attempts = max_attempts

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        snapshot = await self.client.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        return snapshot.to_dict()

    async def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        await self.client.collection(collection).document(doc_id).set(data)

    async def set_merge(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        await self.client.collection(collection).document(doc_id).set(data, merge=True)

    async def delete(self, collection: str, doc_id: str) -> None:
        await self.client.collection(collection).document(doc_id).delete()

    def new_id(self) -> str:
        return uuid.uuid4().hex[:20]

    def _build_query(self, client, collection: str, filters: Sequence[Filter], order_by: OrderBy | None):
        query = client.collection(collection)
        for field, op, value in filters:
            query = query.where(filter=FieldFilter(field, op, value))
        if order_by is not None:
            field, direction = order_by
            query = query.order_by(field, direction=direction)
        return query

    async def query(
        self, collection: str, filters: Sequence[Filter] = (), order_by: OrderBy | None = None
    ) -> list[Document]:
        query = self._build_query(self.client, collection, filters, order_by)
        return [Document(doc.id, doc.to_dict()) async for doc in query.stream()]

    def _require_watch_client(self) -> firestore.Client:
        if self.watch_client is None:
            raise RuntimeError("Live listeners need a synchronous Firestore client")
        return self.watch_client

    def subscribe_document(
        self, collection: str, doc_id: str, on_next: Callback, on_error: Callback | None = None
    ) -> Subscription:
        doc_ref = self._require_watch_client().collection(collection).document(doc_id)
        loop = asyncio.get_running_loop()
        subscription = Subscription(on_next, on_error)

        def _on_snapshot(doc_snapshots, changes, read_time):
            try:
                snapshot = doc_snapshots[0] if doc_snapshots else None
                data = snapshot.to_dict() if snapshot is not None and snapshot.exists else None
            except Exception as e:
                loop.call_soon_threadsafe(subscription.fail, SubscriptionInterrupted(str(e)))
                return
            loop.call_soon_threadsafe(subscription.push, data)

        watch = doc_ref.on_snapshot(_on_snapshot)
        subscription.bind(watch.unsubscribe)
        logger.debug("Document listener opened", collection=collection, doc_id=doc_id)
        return subscription

    def subscribe_query(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: OrderBy | None,
        on_next: Callback,
        on_error: Callback | None = None,
    ) -> Subscription:
        query = self._build_query(self._require_watch_client(), collection, filters, order_by)
        loop = asyncio.get_running_loop()
        subscription = Subscription(on_next, on_error)

        def _on_snapshot(doc_snapshots, changes, read_time):
            try:
                documents = [Document(s.id, s.to_dict()) for s in doc_snapshots]
            except Exception as e:
                loop.call_soon_threadsafe(subscription.fail, SubscriptionInterrupted(str(e)))
                return
            loop.call_soon_threadsafe(subscription.push, documents)

        watch = query.on_snapshot(_on_snapshot)
        subscription.bind(watch.unsubscribe)
        logger.debug("Query listener opened", collection=collection)
        return subscription

    async def append_message(self, chat_id: str, message: dict[str, Any], updated_at_ms: int) -> int:
        """Prepend a message to ``chats/{chat_id}.messages`` inside a transaction.

        The transaction reads the current array, so concurrent appends from
        other devices are retried rather than overwritten.

        Returns:
            The length of the messages array after the append.

        Raises:
            NotFoundError: If the chat document does not exist.
            WriteConflict: If the transaction gave up after ``max_attempts``.
        """
        doc_ref = self.client.collection(CHATS).document(chat_id)
        transaction = self.client.transaction(max_attempts=self.max_attempts)

        @async_transactional
        async def _append(transaction):
            snapshot = await doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError(f"Chat {chat_id} not found")
            messages = list((snapshot.to_dict() or {}).get("messages") or [])
            messages.insert(0, message)
            transaction.set(doc_ref, {"messages": messages, "lastUpdated": updated_at_ms}, merge=True)
            return len(messages)

        try:
            length = await _append(transaction)
        except (Aborted, ValueError) as e:
            logger.warning("Message append abandoned", chat_id=chat_id, error=str(e))
            raise WriteConflict(f"Could not append message to chat {chat_id}: {e}") from e

        logger.info("Message appended", chat_id=chat_id, message_count=length)
        return length
