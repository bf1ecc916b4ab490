"""Chat list rows: display name and latest-message preview."""

from linkup.models.firestore import Chat, EmojiContent, GroupChat, ImageContent, Message, TextContent
from linkup.models.views import ChatSummary

NO_NAME = "~ No Name or Email ~"
NO_MESSAGES = "No messages yet"


def chat_display_name(chat: Chat, viewer_email: str) -> str:
    """Group name, else the other participant's name or email.

    A self-chat lists the viewer twice and shows the viewer's own entry.
    """
    if isinstance(chat, GroupChat):
        return chat.group_name

    others = [p for p in chat.participants if p.email != viewer_email]
    participant = others[0] if others else chat.participants[0]
    return participant.name or participant.email or NO_NAME


def message_body(message: Message, length: int = 20) -> str:
    content = message.content
    if isinstance(content, ImageContent):
        return "sent an image"
    if isinstance(content, TextContent):
        text = content.text
    elif isinstance(content, EmojiContent):
        text = content.emoji
    else:
        raise TypeError(f"Unknown message content: {type(content).__name__}")
    return f"{text[:length]}..." if len(text) > length else text


def chat_preview(chat: Chat, viewer_email: str, length: int = 20) -> str:
    message = chat.latest_message
    if message is None:
        return NO_MESSAGES
    if message.author.id == viewer_email:
        author = "You"
    else:
        author = (message.author.name or "").split(" ")[0]
    return f"{author}: {message_body(message, length)}"


def summarize(chat: Chat, viewer_email: str, unread: int = 0, preview_length: int = 20) -> ChatSummary:
    return ChatSummary(
        chat_id=chat.chat_id,
        name=chat_display_name(chat, viewer_email),
        preview=chat_preview(chat, viewer_email, preview_length),
        last_updated_at=chat.last_updated_at,
        unread=unread,
        is_group=isinstance(chat, GroupChat),
    )
