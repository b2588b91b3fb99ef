from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class ChatTurn:
    role: str  # user | assistant
    content: str


@dataclass(frozen=True)
class ChatReply:
    text: str
    provider: str = "unknown"
    model: str | None = None


class ChatProvider(Protocol):
    name: str

    def complete(self, message: str, history: list[ChatTurn]) -> ChatReply:
        """Answer `message` given prior turns (oldest first). Blocking; runs off the event loop."""
        ...


def history_from_payload(raw: Any, max_turns: int) -> list[ChatTurn]:
    """Convert `conversationHistory` entries ({sender, text}) into chat turns.

    Only the last `max_turns` entries are kept. Entries without usable text are
    skipped rather than rejected.
    """
    if not isinstance(raw, list) or max_turns <= 0:
        return []
    turns: list[ChatTurn] = []
    for item in raw[-max_turns:]:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        if not isinstance(text, str) or not text.strip():
            continue
        role = "user" if item.get("sender") == "user" else "assistant"
        turns.append(ChatTurn(role=role, content=text))
    return turns
