"""Session/Identity Gate.

Decides whether the authenticated or unauthenticated screen tree is shown
and owns every account operation. The signed-in identity lives in an
explicit ``SessionContext`` that components receive instead of reading a
global.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable

import structlog

from linkup.common.errors import NotAuthenticatedError, ValidationError, require_fields, validate_email
from linkup.firebase.auth_service import AuthSession, FirebaseAuthClient, create_account_with_profile
from linkup.firestore.store import DocumentStore, Subscription
from linkup.firestore.users import create_user_profile, delete_user_profile, get_user_profile, update_user_name
from linkup.models.session import User

logger = structlog.get_logger(__name__)

StoreFactory = Callable[[str], DocumentStore]
AuthListener = Callable[[User | None], None]


class ScreenTree(str, Enum):
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class SessionContext:
    """
    The signed-in user, their ID token and document store, and every live
    subscription opened on their behalf.

    Usage:
        context = SessionContext()
        context.init(auth_session, store)
        subscription = context.track(store.subscribe_query(...))
        context.teardown()  # closes every tracked subscription
    """

    def __init__(self):
        self.user: User | None = None
        self.id_token: str | None = None
        self.store: DocumentStore | None = None
        self._subscriptions: list[Subscription] = []

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def init(self, session: AuthSession, store: DocumentStore) -> None:
        if self.user is not None:
            self.teardown()
        self.user = session.user
        self.id_token = session.id_token
        self.store = store

    def teardown(self) -> None:
        open_count = len(self._subscriptions)
        for subscription in self._subscriptions:
            subscription.close()
        self._subscriptions.clear()
        if self.user is not None:
            logger.info("Session torn down", email=self.user.email, closed_subscriptions=open_count)
        self.user = None
        self.id_token = None
        self.store = None

    def track(self, subscription: Subscription) -> Subscription:
        self._subscriptions.append(subscription)
        return subscription

    def release(self, subscription: Subscription) -> None:
        subscription.close()
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def open_subscriptions(self) -> int:
        return len(self._subscriptions)

    def require_user(self) -> User:
        if self.user is None:
            raise NotAuthenticatedError()
        return self.user

    def require_store(self) -> DocumentStore:
        if self.store is None:
            raise NotAuthenticatedError()
        return self.store


class _ListenerHandle:
    def __init__(self, listeners: list[AuthListener], callback: AuthListener):
        self._listeners = listeners
        self._callback = callback

    def close(self) -> None:
        if self._callback in self._listeners:
            self._listeners.remove(self._callback)


class IdentityGate:
    """
    Account operations and the authenticated/unauthenticated switch.

    Validation failures raise ValidationError before any network call, and
    auth failures raise AuthError without changing the current state.

    Usage:
        gate = IdentityGate(auth_client, store_factory)
        gate.on_auth_change(lambda user: print(user))
        await gate.sign_in("a@example.com", "secret")
        gate.tree  # ScreenTree.AUTHENTICATED
    """

    def __init__(
        self,
        auth_client: FirebaseAuthClient,
        store_factory: StoreFactory,
        context: SessionContext | None = None,
    ):
        self.auth_client = auth_client
        self.store_factory = store_factory
        self.context = context or SessionContext()
        self._listeners: list[AuthListener] = []

    def current_user(self) -> User | None:
        return self.context.user

    @property
    def tree(self) -> ScreenTree:
        return ScreenTree.AUTHENTICATED if self.context.is_authenticated else ScreenTree.UNAUTHENTICATED

    def on_auth_change(self, callback: AuthListener) -> _ListenerHandle:
        """Call ``callback`` now with the current user and after every sign-in or sign-out."""
        self._listeners.append(callback)
        callback(self.context.user)
        return _ListenerHandle(self._listeners, callback)

    def _notify(self) -> None:
        user = self.context.user
        for callback in list(self._listeners):
            try:
                callback(user)
            except Exception as e:
                logger.exception("Auth listener failed", error=str(e))

    def _establish(self, session: AuthSession, store: DocumentStore) -> User:
        self.context.init(session, store)
        self._notify()
        return session.user

    async def sign_in(self, email: str, password: str) -> User:
        require_fields(email=email, password=password)
        email = validate_email(email)
        session = await self.auth_client.sign_in(email, password)
        return self._establish(session, self.store_factory(session.id_token))

    async def sign_up(self, email: str, password: str, display_name: str) -> User:
        require_fields(name=display_name, email=email, password=password)
        email = validate_email(email)
        session, store = await create_account_with_profile(
            self.auth_client, self.store_factory, display_name.strip(), email, password
        )
        return self._establish(session, store)

    async def sign_out(self) -> None:
        was_signed_in = self.context.is_authenticated
        self.context.teardown()
        if was_signed_in:
            logger.info("Signed out")
            self._notify()

    async def change_password(self, current_password: str, new_password: str) -> None:
        """Re-authenticate with ``current_password`` and then set ``new_password``."""
        user = self.context.require_user()
        require_fields(current_password=current_password, new_password=new_password)
        session = await self.auth_client.sign_in(user.email, current_password)
        self.context.id_token = await self.auth_client.change_password(session.id_token, new_password)
        logger.info("Password changed", uid=user.id)

    async def delete_current_user(self) -> None:
        """Remove ``users/{email}`` and the auth account, then sign out.

        The profile is written back if the auth account cannot be deleted,
        so a failure leaves the user signed in with their profile intact.
        """
        user = self.context.require_user()
        store = self.context.require_store()
        profile = await get_user_profile(store, user.email)
        await delete_user_profile(store, user.email)
        try:
            await self.auth_client.delete_account(self.context.id_token)
        except Exception as e:
            logger.warning("Restoring profile after failed account deletion", uid=user.id, error=str(e))
            if profile is not None:
                await create_user_profile(store, profile)
            raise
        logger.info("Account deleted", uid=user.id, email=user.email)
        await self.sign_out()

    async def update_display_name(self, name: str) -> User:
        user = self.context.require_user()
        if not (name or "").strip():
            raise ValidationError("name", "Name cannot be empty")
        name = name.strip()
        await self.auth_client.update_profile(self.context.id_token, display_name=name)
        await update_user_name(self.context.require_store(), user.email, name)
        self.context.user = user.model_copy(update={"display_name": name})
        logger.info("Display name updated", uid=user.id)
        self._notify()
        return self.context.user
