"""Pydantic models for the LinkUp client API.

Request bodies default blank fields to "" so the gate's own validation
produces the user-facing message instead of a generic 422.
"""

from __future__ import annotations

import time
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from linkup.firebase.storage import UploadState
from linkup.localstore.theme import ThemeMode
from linkup.models.session import User
from linkup.models.views import ChatSummary, RenderedMessage
from linkup.session.gate import ScreenTree


class SignInRequest(BaseModel):
    email: str = Field("", examples=["ada@example.com"])
    password: str = ""


class SignUpRequest(BaseModel):
    display_name: str = Field("", examples=["Ada Lovelace"])
    email: str = Field("", examples=["ada@example.com"])
    password: str = ""


class PasswordChangeRequest(BaseModel):
    current_password: str = ""
    new_password: str = ""


class ProfileUpdateRequest(BaseModel):
    display_name: str = ""


class SessionResponse(BaseModel):
    """Which screen tree to show and who is signed in."""
    tree: ScreenTree
    user: User | None = None


class ChatListResponse(BaseModel):
    chats: list[ChatSummary]
    badge: int = Field(..., description="Sum of unread counts across all chats.")
    loading: bool = False
    error: str | None = Field(None, description="Set while the live listener is interrupted.")


class BadgeResponse(BaseModel):
    badge: int


class DirectChatRequest(BaseModel):
    email: str = ""


class GroupChatRequest(BaseModel):
    group_name: str = ""
    member_emails: list[str] = Field(default_factory=list)


class ChatCreatedResponse(BaseModel):
    chat_id: str


class DeleteChatsRequest(BaseModel):
    chat_ids: list[str] = Field(..., min_length=1)


class DeleteChatsResponse(BaseModel):
    deleted: list[str] = Field(..., description="Chats removed outright because no member was left.")


class LeaveChatResponse(BaseModel):
    chat_id: str
    deleted: bool


class MemberResponse(BaseModel):
    email: str
    name: str | None = None
    label: str


class ChatInfoResponse(BaseModel):
    chat_id: str
    name: str
    is_group: bool
    members: list[MemberResponse]
    admins: list[str] = Field(default_factory=list)


class ConversationResponse(BaseModel):
    chat_id: str
    state: Literal["closed", "loading", "live"]
    messages: list[RenderedMessage] = Field(default_factory=list, description="Newest first.")
    upload_state: UploadState = UploadState.IDLE
    emoji_picker_open: bool = False
    removed: bool = Field(False, description="The chat document no longer exists.")
    error: str | None = None


class SendMessageRequest(BaseModel):
    """Exactly one of ``text`` or ``emoji``."""
    text: str | None = None
    emoji: str | None = None

    @model_validator(mode="after")
    def exactly_one_kind(self) -> "SendMessageRequest":
        if (self.text is None) == (self.emoji is None):
            raise ValueError("Provide exactly one of text or emoji")
        return self


class UserResponse(BaseModel):
    email: str
    name: str | None = None
    about: str | None = None
    label: str


class AddContactRequest(BaseModel):
    name: str = ""
    email: str = ""


class ThemeRequest(BaseModel):
    mode: ThemeMode


class ThemeResponse(BaseModel):
    mode: ThemeMode


class HealthResponse(BaseModel):
    """Response model for the health check endpoint."""

    status: Literal["healthy", "unhealthy"] = Field(description="Health status", examples=["healthy"])
    service: str = Field(description="Service name", examples=["linkup-client"])
    version: str = Field(description="Service version", examples=["0.1.0"])
    timestamp: float = Field(default_factory=time.time, description="Unix timestamp")
    details: dict[str, str] | None = Field(default=None, description="Collaborator status")


class ErrorResponse(BaseModel):
    """Body of every error response."""
    error_code: str = Field(..., examples=["AUTH_ERROR"])
    message: str
    kind: str | None = Field(None, description="AuthError kind, for auth failures.")
    field: str | None = Field(None, description="Offending field, for validation failures.")
