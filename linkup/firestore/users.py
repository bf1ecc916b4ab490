"""Functions for managing user profiles in Firestore."""

import structlog
from pydantic import ValidationError as PydanticValidationError

from linkup.firestore.store import USERS, DocumentStore
from linkup.models.firestore import UserProfile

logger = structlog.get_logger(__name__)


async def get_user_profile(store: DocumentStore, email: str) -> UserProfile | None:
    """Retrieves a user profile document.

    Args:
        store: The document store.
        email: The user's email, which is also the document id.

    Returns:
        A UserProfile if the document exists, otherwise None.
    """
    data = await store.get(USERS, email)
    if data is None:
        return None
    return UserProfile.model_validate({"email": email, **data})


async def create_user_profile(store: DocumentStore, profile: UserProfile) -> UserProfile:
    """Writes ``users/{email}`` for a new account or contact."""
    await store.set(USERS, profile.email, profile.to_document())
    return profile


async def update_user_name(store: DocumentStore, email: str, name: str) -> None:
    await store.set_merge(USERS, email, {"name": name})


async def delete_user_profile(store: DocumentStore, email: str) -> None:
    await store.delete(USERS, email)


async def list_user_profiles(store: DocumentStore) -> list[UserProfile]:
    """All user profiles ordered by name. Malformed documents are skipped."""
    profiles = []
    for document in await store.query(USERS, order_by=("name", "ASCENDING")):
        try:
            profiles.append(UserProfile.model_validate({"email": document.id, **document.data}))
        except PydanticValidationError as e:
            logger.warning("Skipping malformed user document", doc_id=document.id, error=str(e))
    return profiles
