"""User directory and chat creation (direct chats, groups, contacts)."""

from __future__ import annotations

from datetime import UTC, datetime

import structlog

from linkup.common.errors import ValidationError, require_fields, validate_email
from linkup.firestore.chats import create_direct_chat, create_group_chat, find_direct_chat
from linkup.firestore.users import create_user_profile, get_user_profile, list_user_profiles
from linkup.models.firestore import Participant, UserProfile, to_millis
from linkup.session.gate import SessionContext

logger = structlog.get_logger(__name__)


class ChatDirectory:
    """
    Everyone the user can start a chat with.

    Usage:
        directory = ChatDirectory(context)
        users = await directory.list_users()
        chat_id = await directory.open_direct_chat(users[0])
    """

    def __init__(self, context: SessionContext):
        self.context = context

    async def list_users(self) -> list[UserProfile]:
        return await list_user_profiles(self.context.require_store())

    async def search_users(self, text: str) -> list[UserProfile]:
        needle = (text or "").strip().lower()
        users = await self.list_users()
        if not needle:
            return users
        return [u for u in users if needle in (u.name or "").lower() or needle in u.email.lower()]

    def label_for(self, user: UserProfile) -> str:
        label = user.name or user.email
        if user.email == self.context.require_user().email:
            return f"{label} (You)"
        return label

    async def open_direct_chat(self, other: UserProfile) -> str:
        """Id of the 1:1 chat with ``other``, creating it on first use."""
        me = self.context.require_user()
        store = self.context.require_store()
        existing = await find_direct_chat(store, me, other.email)
        if existing is not None:
            return existing.chat_id
        if other.email == me.email:
            other_entry = Participant(email=me.email, name=me.display_name)
        else:
            other_entry = Participant(email=other.email, name=other.name)
        return await create_direct_chat(store, me, other_entry)

    async def create_group(self, group_name: str, members: list[UserProfile]) -> str:
        me = self.context.require_user()
        if not members:
            raise ValidationError("members", "Please select at least one user to create a group.")
        if not (group_name or "").strip():
            raise ValidationError("group_name", "Group name cannot be empty")

        participants = []
        seen = {me.email}
        for member in members:
            if member.email in seen:
                continue
            seen.add(member.email)
            participants.append(Participant(email=member.email, name=member.name))
        if not participants:
            raise ValidationError("members", "Please select at least one user to create a group.")

        return await create_group_chat(self.context.require_store(), me, group_name.strip(), participants)

    async def add_contact(self, name: str, email: str) -> str:
        """Register a contact by email and open a direct chat with them."""
        require_fields(name=name, email=email)
        email = validate_email(email)
        store = self.context.require_store()

        profile = await get_user_profile(store, email)
        if profile is None:
            profile = UserProfile(
                email=email,
                name=name.strip(),
                about=None,
                created_at=to_millis(datetime.now(UTC)),
            )
            await create_user_profile(store, profile)
            logger.info("Contact added", email=email)
        return await self.open_direct_chat(profile)
