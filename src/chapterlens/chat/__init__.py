"""Chat session client."""

from chapterlens.chat.session import Accumulator, ChatEntry, ChatSession, ReplyUpdate

__all__ = ["Accumulator", "ChatEntry", "ChatSession", "ReplyUpdate"]
