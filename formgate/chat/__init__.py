from __future__ import annotations

from ..config import Settings
from .base import ChatProvider, ChatReply, ChatTurn, history_from_payload
from .openai_provider import OpenRouterChat


def get_chat_provider(settings: Settings) -> ChatProvider:
    return OpenRouterChat(settings)


__all__ = [
    "ChatProvider",
    "ChatReply",
    "ChatTurn",
    "OpenRouterChat",
    "get_chat_provider",
    "history_from_payload",
]
