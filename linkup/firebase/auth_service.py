"""Firebase Authentication collaborator for the chat client.

Talks to the Identity Toolkit REST API with the project's web API key, the
same endpoints the Firebase client SDKs use for email/password accounts.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from linkup.common.errors import AuthError, AuthErrorKind
from linkup.firestore.store import DocumentStore
from linkup.firestore.users import create_user_profile
from linkup.models.firestore import UserProfile, to_datetime
from linkup.models.session import User, UserMetadata

logger = structlog.get_logger(__name__)

_ERROR_KINDS = {
    "EMAIL_NOT_FOUND": AuthErrorKind.INVALID_CREDENTIALS,
    "INVALID_PASSWORD": AuthErrorKind.INVALID_CREDENTIALS,
    "INVALID_LOGIN_CREDENTIALS": AuthErrorKind.INVALID_CREDENTIALS,
    "INVALID_EMAIL": AuthErrorKind.INVALID_CREDENTIALS,
    "USER_DISABLED": AuthErrorKind.INVALID_CREDENTIALS,
    "INVALID_ID_TOKEN": AuthErrorKind.INVALID_CREDENTIALS,
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN": AuthErrorKind.INVALID_CREDENTIALS,
    "TOKEN_EXPIRED": AuthErrorKind.INVALID_CREDENTIALS,
    "USER_NOT_FOUND": AuthErrorKind.INVALID_CREDENTIALS,
    "WEAK_PASSWORD": AuthErrorKind.WEAK_PASSWORD,
    "EMAIL_EXISTS": AuthErrorKind.EMAIL_IN_USE,
}


class AuthSession(BaseModel):
    """A signed-in identity together with its tokens."""
    user: User
    id_token: str
    refresh_token: str | None = None


def error_kind_for(message: str) -> AuthErrorKind:
    """Map an Identity Toolkit error message to an AuthErrorKind.

    Messages look like ``EMAIL_EXISTS`` or ``WEAK_PASSWORD : Password should
    be at least 6 characters``; only the leading code matters.
    """
    code = message.split(":")[0].strip().split(" ")[0]
    return _ERROR_KINDS.get(code, AuthErrorKind.UNKNOWN)


class FirebaseAuthClient:
    """
    Email/password account operations against Firebase Auth.

    Usage:
        auth_client = FirebaseAuthClient(api_key)
        session = await auth_client.sign_in("a@example.com", "secret")
        await auth_client.update_profile(session.id_token, display_name="Alice")
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://identitytoolkit.googleapis.com/v1",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._http = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def sign_in(self, email: str, password: str) -> AuthSession:
        data = await self._post(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        user = await self.lookup(data["idToken"])
        logger.info("Signed in", uid=user.id, email=user.email)
        return AuthSession(user=user, id_token=data["idToken"], refresh_token=data.get("refreshToken"))

    async def sign_up(self, email: str, password: str, display_name: str) -> AuthSession:
        data = await self._post(
            "accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        id_token = data["idToken"]
        await self.update_profile(id_token, display_name=display_name)
        user = await self.lookup(id_token)
        logger.info("Account created", uid=user.id, email=user.email)
        return AuthSession(user=user, id_token=id_token, refresh_token=data.get("refreshToken"))

    async def lookup(self, id_token: str) -> User:
        data = await self._post("accounts:lookup", {"idToken": id_token})
        users = data.get("users") or []
        if not users:
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS, "USER_NOT_FOUND")
        record = users[0]
        return User(
            id=record["localId"],
            email=record.get("email", ""),
            display_name=record.get("displayName"),
            metadata=UserMetadata(
                created_at=_millis(record.get("createdAt")),
                last_sign_in_at=_millis(record.get("lastLoginAt")),
            ),
        )

    async def update_profile(self, id_token: str, display_name: str) -> None:
        await self._post(
            "accounts:update",
            {"idToken": id_token, "displayName": display_name, "returnSecureToken": False},
        )

    async def change_password(self, id_token: str, new_password: str) -> str:
        """Set a new password and return the fresh ID token issued with it."""
        data = await self._post(
            "accounts:update",
            {"idToken": id_token, "password": new_password, "returnSecureToken": True},
        )
        return data["idToken"]

    async def delete_account(self, id_token: str) -> None:
        await self._post("accounts:delete", {"idToken": id_token})

    async def _post(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/{endpoint}"
        try:
            response = await self._http.post(url, params={"key": self.api_key}, json=payload)
        except httpx.TransportError as e:
            logger.warning("Auth request failed to reach Firebase", endpoint=endpoint, error=str(e))
            raise AuthError(AuthErrorKind.NETWORK_UNAVAILABLE, str(e) or "Network request failed") from e

        if response.is_error:
            try:
                message = response.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                message = response.text or f"HTTP {response.status_code}"
            kind = error_kind_for(message)
            logger.info("Auth request rejected", endpoint=endpoint, status_code=response.status_code, kind=kind.value)
            raise AuthError(kind, message)

        return response.json()


def _millis(value: str | int | None):
    if value in (None, ""):
        return None
    return to_datetime(int(value))


async def create_account_with_profile(
    auth_client: FirebaseAuthClient,
    store_factory,
    display_name: str,
    email: str,
    password: str,
) -> tuple[AuthSession, DocumentStore]:
    """Create a Firebase Auth account and its ``users/{email}`` document atomically.

    The auth account is deleted again if the profile write fails, so a failed
    sign-up never leaves an account without a profile.

    Args:
        auth_client: The auth collaborator.
        store_factory: Builds a document store authenticated with an ID token.
        display_name: Name shown to other users.
        email: Account email, also the profile document id.
        password: Account password.

    Returns:
        Tuple of (auth session, document store for that session).
    """
    session = await auth_client.sign_up(email, password, display_name)

    try:
        store = store_factory(session.id_token)
        profile = UserProfile(
            id=session.user.id,
            email=session.user.email,
            name=session.user.display_name or display_name,
            about="Available",
        )
        await create_user_profile(store, profile)
        logger.info("User profile created", uid=session.user.id, email=session.user.email)
        return session, store
    except Exception as e:
        logger.warning("Rolling back auth account after profile failure", uid=session.user.id, error=str(e))
        try:
            await auth_client.delete_account(session.id_token)
        except AuthError as rollback_error:
            logger.error(
                "Failed to roll back auth account",
                uid=session.user.id,
                rollback_error=str(rollback_error),
                original_error=str(e),
            )
        raise
