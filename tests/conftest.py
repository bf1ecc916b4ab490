"""
Pytest configuration and fixtures for LinkUp tests.

Provides shared fixtures for:
- Test environment settings (LINKUP_APP_ENV=test)
- fakeredis-backed local store
- An in-memory document store with live listeners
- An in-memory auth collaborator and signed-in session contexts
"""

import copy
import itertools
from collections import defaultdict

import pytest

from linkup.common.errors import AuthError, AuthErrorKind, NotFoundError
from linkup.common.settings import get_settings
from linkup.firebase.auth_service import AuthSession
from linkup.firestore.store import Document, Subscription
from linkup.localstore.store import LocalStore
from linkup.models.session import User
from linkup.session.gate import SessionContext


class InMemoryDocumentStore:
    """DocumentStore double that re-delivers every listener's view after each write."""

    def __init__(self):
        self.collections: dict[str, dict[str, dict]] = defaultdict(dict)
        self._watchers: list[tuple[Subscription, callable]] = []
        self._ids = itertools.count(1)
        self.writes: list[tuple[str, str, str]] = []

    async def get(self, collection, doc_id):
        data = self.collections[collection].get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    async def set(self, collection, doc_id, data):
        self.collections[collection][doc_id] = copy.deepcopy(data)
        self.writes.append(("set", collection, doc_id))
        self._notify()

    async def set_merge(self, collection, doc_id, data):
        current = self.collections[collection].setdefault(doc_id, {})
        current.update(copy.deepcopy(data))
        self.writes.append(("merge", collection, doc_id))
        self._notify()

    async def delete(self, collection, doc_id):
        self.collections[collection].pop(doc_id, None)
        self.writes.append(("delete", collection, doc_id))
        self._notify()

    def new_id(self):
        return f"chat-{next(self._ids)}"

    def _matches(self, data, filters):
        for field, op, value in filters:
            if op == "array_contains":
                if value not in (data.get(field) or []):
                    return False
            elif op == "==":
                if data.get(field) != value:
                    return False
            else:
                raise NotImplementedError(op)
        return True

    def _run_query(self, collection, filters, order_by):
        documents = [
            Document(doc_id, copy.deepcopy(data))
            for doc_id, data in self.collections[collection].items()
            if self._matches(data, filters)
        ]
        if order_by is not None:
            field, direction = order_by
            documents.sort(key=lambda d: d.data.get(field) or 0, reverse=direction == "DESCENDING")
        return documents

    async def query(self, collection, filters=(), order_by=None):
        return self._run_query(collection, filters, order_by)

    def _watch(self, subscription, snapshot):
        self._watchers.append((subscription, snapshot))
        subscription.bind(lambda: self._unwatch(subscription))
        subscription.push(snapshot())
        return subscription

    def _unwatch(self, subscription):
        self._watchers = [(s, snap) for s, snap in self._watchers if s is not subscription]

    def subscribe_document(self, collection, doc_id, on_next, on_error=None):
        def snapshot():
            data = self.collections[collection].get(doc_id)
            return copy.deepcopy(data) if data is not None else None

        return self._watch(Subscription(on_next, on_error), snapshot)

    def subscribe_query(self, collection, filters, order_by, on_next, on_error=None):
        return self._watch(
            Subscription(on_next, on_error),
            lambda: self._run_query(collection, filters, order_by),
        )

    async def append_message(self, chat_id, message, updated_at_ms):
        chat = self.collections["chats"].get(chat_id)
        if chat is None:
            raise NotFoundError(f"Chat {chat_id} not found")
        chat["messages"] = [copy.deepcopy(message)] + list(chat.get("messages") or [])
        chat["lastUpdated"] = updated_at_ms
        self.writes.append(("append", "chats", chat_id))
        self._notify()
        return len(chat["messages"])

    def _notify(self):
        for subscription, snapshot in list(self._watchers):
            if not subscription.closed:
                subscription.push(snapshot())

    def fail_listeners(self, error):
        for subscription, _ in list(self._watchers):
            subscription.fail(error)

    @property
    def listener_count(self):
        return len(self._watchers)


class InMemoryAuthClient:
    """Auth collaborator double with the error behaviour of Firebase Auth."""

    def __init__(self):
        self.accounts: dict[str, dict] = {}
        self.tokens: dict[str, str] = {}
        self.offline = False
        self._uids = itertools.count(1)

    def _check_network(self):
        if self.offline:
            raise AuthError(AuthErrorKind.NETWORK_UNAVAILABLE, "Network request failed")

    def _issue(self, email):
        token = f"token-{email}-{next(self._uids)}"
        self.tokens[token] = email
        return token

    def _user(self, email):
        account = self.accounts[email]
        return User(id=account["uid"], email=email, display_name=account["name"])

    def _email_for(self, id_token):
        email = self.tokens.get(id_token)
        if email is None or email not in self.accounts:
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, "INVALID_ID_TOKEN")
        return email

    async def sign_in(self, email, password):
        self._check_network()
        account = self.accounts.get(email)
        if account is None or account["password"] != password:
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, "INVALID_LOGIN_CREDENTIALS")
        return AuthSession(user=self._user(email), id_token=self._issue(email))

    async def sign_up(self, email, password, display_name):
        self._check_network()
        if email in self.accounts:
            raise AuthError(AuthErrorKind.EMAIL_IN_USE, "EMAIL_EXISTS")
        if len(password) < 6:
            raise AuthError(AuthErrorKind.WEAK_PASSWORD, "WEAK_PASSWORD : Password should be at least 6 characters")
        self.accounts[email] = {"uid": f"uid-{next(self._uids)}", "password": password, "name": display_name}
        return AuthSession(user=self._user(email), id_token=self._issue(email))

    async def update_profile(self, id_token, display_name):
        self._check_network()
        self.accounts[self._email_for(id_token)]["name"] = display_name

    async def change_password(self, id_token, new_password):
        self._check_network()
        email = self._email_for(id_token)
        if len(new_password) < 6:
            raise AuthError(AuthErrorKind.WEAK_PASSWORD, "WEAK_PASSWORD")
        self.accounts[email]["password"] = new_password
        return self._issue(email)

    async def delete_account(self, id_token):
        self._check_network()
        self.accounts.pop(self._email_for(id_token))

    async def lookup(self, id_token):
        return self._user(self._email_for(id_token))

    async def aclose(self):
        pass


def make_user(email, name, uid=None):
    return User(id=uid or f"uid-{email.split('@')[0]}", email=email, display_name=name)


def signed_in(store, user):
    """A SessionContext already initialised for ``user``."""
    context = SessionContext()
    context.init(AuthSession(user=user, id_token=f"token-{user.email}"), store)
    return context


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Set up test environment variables."""
    monkeypatch.setenv("LINKUP_APP_ENV", "test")
    monkeypatch.delenv("LINKUP_REDIS_URL", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def redis_client():
    """
    Provide fakeredis client for testing.

    This avoids requiring actual Redis server during tests.
    """
    from fakeredis import aioredis as fakeredis

    client = fakeredis.FakeRedis(decode_responses=True)

    yield client

    await client.flushdb()
    await client.aclose()


@pytest.fixture
def local_store(redis_client):
    return LocalStore(redis_client)


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def auth_client():
    return InMemoryAuthClient()


@pytest.fixture
def alice():
    return make_user("alice@example.com", "Alice Smith")


@pytest.fixture
def bob():
    return make_user("bob@example.com", "Bob Jones")


@pytest.fixture
def user_factory():
    return make_user


@pytest.fixture
def context_for(document_store):
    """Build a signed-in SessionContext on the shared document store."""
    def _context_for(user):
        return signed_in(document_store, user)
    return _context_for
