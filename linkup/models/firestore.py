"""Pydantic models for the Firestore collections used by the chat client.

Documents are validated once when they cross the store boundary and are
converted back with ``to_document()`` when written. Field aliases follow the
camelCase names stored in Firestore.
"""
from datetime import UTC, datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

EPOCH = datetime.fromtimestamp(0, UTC)


def to_datetime(value: Any) -> datetime | None:
    """Coerce a Firestore timestamp, epoch-millis int or ISO string to an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, UTC)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def to_millis(value: datetime) -> int:
    """Epoch milliseconds, the unit of the ``lastUpdated`` field."""
    return int(value.timestamp() * 1000)


class UserProfile(BaseModel):
    """A user document in the ``users`` collection, keyed by email."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: str = Field(..., description="The user's email address (document id).")
    name: str | None = Field(None, description="Display name.")
    id: str | None = Field(None, description="Firebase Auth UID, when the user signed up.")
    about: str | None = Field("Available", description="Status line shown in chat info.")
    created_at: int | None = Field(None, alias="createdAt", description="Epoch millis, set for contacts added by hand.")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Participant(BaseModel):
    """One entry of a chat's ``users`` array."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    email: str
    name: str | None = None
    removed: bool = Field(False, alias="deletedFromChat")

    def to_document(self) -> dict[str, Any]:
        return {"email": self.email, "name": self.name, "deletedFromChat": self.removed}


class MessageAuthor(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: str = Field(..., alias="_id", description="Author email.")
    name: str | None = None
    avatar_url: str | None = Field(None, alias="avatar")

    def to_document(self) -> dict[str, Any]:
        return {"_id": self.id, "name": self.name, "avatar": self.avatar_url or ""}


class TextContent(BaseModel):
    kind: Literal["text"] = "text"
    text: str = Field(..., min_length=1)


class ImageContent(BaseModel):
    kind: Literal["image"] = "image"
    url: str = Field(..., min_length=1)


class EmojiContent(BaseModel):
    kind: Literal["emoji"] = "emoji"
    emoji: str = Field(..., min_length=1)


MessageContent = Annotated[Union[TextContent, ImageContent, EmojiContent], Field(discriminator="kind")]


class Message(BaseModel):
    """A single chat message. Immutable once appended."""
    model_config = ConfigDict(frozen=True)

    id: str
    content: MessageContent
    created_at: datetime
    author: MessageAuthor

    @field_validator("created_at", mode="before")
    @classmethod
    def coerce_created_at(cls, v: Any) -> datetime:
        return to_datetime(v) or EPOCH

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> "Message":
        """Build a message from its stored shape.

        Raises:
            ValueError: If the message has neither text nor image.
        """
        text = data.get("text") or ""
        image = data.get("image") or ""
        if image:
            content: MessageContent = ImageContent(url=image)
        elif data.get("type") == "emoji" and text:
            content = EmojiContent(emoji=text)
        elif text:
            content = TextContent(text=text)
        else:
            raise ValueError("Message has neither text nor image")

        return cls(
            id=str(data.get("_id") or ""),
            content=content,
            created_at=data.get("createdAt"),
            author=MessageAuthor.model_validate(data.get("user") or {}),
        )

    def to_document(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            "_id": self.id,
            "createdAt": self.created_at,
            "text": "",
            "image": "",
            "user": self.author.to_document(),
            "sent": True,
            "received": False,
        }
        content = self.content
        if isinstance(content, TextContent):
            document["text"] = content.text
        elif isinstance(content, ImageContent):
            document["image"] = content.url
        elif isinstance(content, EmojiContent):
            document["text"] = content.emoji
            document["type"] = "emoji"
        else:
            raise TypeError(f"Unknown message content: {type(content).__name__}")
        return document


class _ChatBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    chat_id: str
    participants: list[Participant]
    messages: list[Message] = Field(default_factory=list, description="Newest first.")
    last_updated_at: datetime | None = None

    @field_validator("last_updated_at", mode="before")
    @classmethod
    def coerce_last_updated(cls, v: Any) -> datetime | None:
        return to_datetime(v)

    @property
    def latest_message(self) -> Message | None:
        return self.messages[0] if self.messages else None

    @property
    def last_updated_ms(self) -> int:
        return to_millis(self.last_updated_at) if self.last_updated_at else 0

    def has_member(self, email: str) -> bool:
        return any(p.email == email for p in self.participants)

    def all_removed(self) -> bool:
        return all(p.removed for p in self.participants)

    def members(self) -> list[Participant]:
        """Participants deduplicated by email, first occurrence wins."""
        unique: dict[str, Participant] = {}
        for participant in self.participants:
            unique.setdefault(participant.email, participant)
        return list(unique.values())


class PersonalChat(_ChatBase):
    """A 1:1 chat. A self-chat lists the same email twice."""
    kind: Literal["personal"] = "personal"

    @model_validator(mode="after")
    def exactly_two_participants(self) -> "PersonalChat":
        if len(self.participants) != 2:
            raise ValueError("A personal chat must have exactly 2 participants")
        return self


class GroupChat(_ChatBase):
    kind: Literal["group"] = "group"
    group_name: str = Field(..., min_length=1)
    admins: list[str] = Field(default_factory=list)

    @field_validator("group_name")
    @classmethod
    def group_name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Group name cannot be empty")
        return v

    @model_validator(mode="after")
    def at_least_two_participants(self) -> "GroupChat":
        if len(self.participants) < 2:
            raise ValueError("A group chat needs at least 2 participants")
        return self


Chat = Annotated[Union[PersonalChat, GroupChat], Field(discriminator="kind")]
