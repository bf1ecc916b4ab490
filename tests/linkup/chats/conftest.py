"""Builders for parsed chats used by the chat component tests."""

from datetime import UTC, datetime, timedelta

import pytest

from linkup.models.firestore import (
    EmojiContent,
    GroupChat,
    ImageContent,
    Message,
    MessageAuthor,
    Participant,
    PersonalChat,
    TextContent,
)

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def message(author_email, author_name, text=None, image=None, emoji=None, minutes=0, msg_id=None):
    if image:
        content = ImageContent(url=image)
    elif emoji:
        content = EmojiContent(emoji=emoji)
    else:
        content = TextContent(text=text or "hi")
    return Message(
        id=msg_id or f"m-{author_email}-{minutes}",
        content=content,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        author=MessageAuthor(id=author_email, name=author_name),
    )


def build_chat(chat_id, people, messages=(), group_name=None, updated_ms=1714564800000):
    participants = [Participant(email=email, name=name) for email, name in people]
    fields = dict(
        chat_id=chat_id,
        participants=participants,
        messages=list(messages),
        last_updated_at=updated_ms,
    )
    if group_name:
        return GroupChat(group_name=group_name, admins=[people[0][0]], **fields)
    return PersonalChat(**fields)


@pytest.fixture
def make_message():
    return message


@pytest.fixture
def make_chat():
    return build_chat
