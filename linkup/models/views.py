"""Display models derived from chat documents.

These are what the chat list and conversation screens render; they are
rebuilt from scratch on every snapshot.
"""
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class ChatSummary(BaseModel):
    """One row of the chat list."""
    chat_id: str
    name: str = Field(..., description="Group name, or the other participant's name/email.")
    preview: str = Field(..., description="'<author>: <body>' for the latest message.")
    last_updated_at: datetime | None = None
    unread: int = 0
    is_group: bool = False


class RenderedMessage(BaseModel):
    """A message mapped for display, with its avatar resolved."""
    id: str
    kind: Literal["text", "image", "emoji"]
    text: str = ""
    image_url: str | None = None
    created_at: datetime
    author_id: str
    author_name: str | None = None
    avatar_url: str
    is_own: bool = False
