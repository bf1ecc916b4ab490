"""Chat list, conversation log and directory components."""

from linkup.chats.chat_list import ChatListSynchronizer
from linkup.chats.conversation import ConversationLog, LogState
from linkup.chats.directory import ChatDirectory

__all__ = ["ChatDirectory", "ChatListSynchronizer", "ConversationLog", "LogState"]
