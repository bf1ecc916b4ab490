"""Local unread counters for the chat list.

Two maps are kept per signed-in user and persisted to the local store:
``newMessages`` (chat id to unread count) and ``lastSeen`` (chat id to the
``lastUpdated`` value last observed). Neither is ever written to the
document store.
"""

import structlog

from linkup.localstore.store import LocalStore
from linkup.models.firestore import Chat

logger = structlog.get_logger(__name__)


class UnreadTracker:
    """
    Counts unseen chat updates between snapshots.

    Usage:
        unread = UnreadTracker(local_store, "a@example.com")
        await unread.load()
        await unread.apply(chats, active_chat_id=None)
        unread.badge
    """

    def __init__(self, store: LocalStore, owner_email: str):
        self.store = store
        self.owner_email = owner_email
        self.counts: dict[str, int] = {}
        self.last_seen: dict[str, int] = {}

    @property
    def counts_key(self) -> str:
        return f"newMessages:{self.owner_email}"

    @property
    def last_seen_key(self) -> str:
        return f"lastSeen:{self.owner_email}"

    @property
    def badge(self) -> int:
        return sum(self.counts.values())

    def count_for(self, chat_id: str) -> int:
        return self.counts.get(chat_id, 0)

    async def load(self) -> None:
        counts = await self.store.get(self.counts_key, {})
        last_seen = await self.store.get(self.last_seen_key, {})
        self.counts = {k: int(v) for k, v in counts.items()} if isinstance(counts, dict) else {}
        self.last_seen = {k: int(v) for k, v in last_seen.items()} if isinstance(last_seen, dict) else {}
        logger.debug("Unread state loaded", owner=self.owner_email, badge=self.badge)

    async def _persist(self) -> None:
        await self.store.set(self.counts_key, self.counts)
        await self.store.set(self.last_seen_key, self.last_seen)

    async def apply(self, chats: list[Chat], active_chat_id: str | None = None) -> None:
        """Update the counters from a full chat list snapshot.

        A chat whose ``lastUpdated`` moved past the stored value gains one
        unread unless it is the open chat or the owner wrote the latest
        message. A chat seen for the first time counts one if its latest
        message came from someone else, otherwise it only seeds
        ``lastSeen``. Chats missing from the snapshot are forgotten.
        """
        present = set()
        for chat in chats:
            chat_id = chat.chat_id
            present.add(chat_id)
            updated_ms = chat.last_updated_ms
            previous = self.last_seen.get(chat_id)

            latest = chat.latest_message
            by_other = latest is not None and latest.author.id != self.owner_email
            if chat_id != active_chat_id and by_other:
                if previous is None or updated_ms > previous:
                    self.counts[chat_id] = self.counts.get(chat_id, 0) + 1

            self.last_seen[chat_id] = max(updated_ms, previous or 0)

        self.counts = {k: v for k, v in self.counts.items() if k in present}
        self.last_seen = {k: v for k, v in self.last_seen.items() if k in present}
        await self._persist()

    async def reset(self, chat_id: str) -> None:
        """Mark a chat as read."""
        self.counts[chat_id] = 0
        await self._persist()
