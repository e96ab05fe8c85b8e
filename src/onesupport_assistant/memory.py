"""
Conversation memory for the OneSupport assistant.

Keeps a sliding window of recent conversation turns and renders them in the
shape the chat model expects.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Optional


@dataclass
class Message:
    """One turn of an agent's chat with the assistant."""

    role: str  # "user" or "assistant"
    content: str
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class ConversationWindow:
    """
    The last few turns of a stored conversation, fed back to the model so
    follow-up questions keep their context.
    """

    def __init__(self, max_messages: int = 10):
        """
        Initialize the window.

        Args:
            max_messages: Maximum number of messages to retain
        """
        self.max_messages = max_messages
        self.messages: list[Message] = []

    @classmethod
    def from_stored(
        cls, stored: Optional[Iterable[dict]], max_messages: int = 10
    ) -> "ConversationWindow":
        """Build a window from persisted conversation messages."""
        window = cls(max_messages=max_messages)
        for item in stored or []:
            role = item.get("role") or ("user" if item.get("sender") == "user" else "assistant")
            content = item.get("content") or item.get("text") or ""
            window.add_message(role, content, timestamp=item.get("timestamp"))
        return window

    def add_message(
        self,
        role: str,
        content: str,
        timestamp: Optional[str] = None,
    ) -> None:
        """
        Add a message to the conversation history.

        Args:
            role: "user" or "assistant"
            content: Message content
            timestamp: Original timestamp for restored messages
        """
        if role not in ("user", "assistant") or not content:
            return

        message = Message(role=role, content=content)
        if timestamp:
            message.timestamp = timestamp
        self.messages.append(message)

        # Trim if exceeding max
        if len(self.messages) > self.max_messages:
            self.messages = self.messages[-self.max_messages :]

    def get_context(self) -> list[dict[str, Any]]:
        """
        Get conversation context for model input.

        Anthropic models require alternating roles starting with the user,
        so leading assistant turns are dropped and consecutive messages from
        the same role are merged.
        """
        context: list[dict[str, Any]] = []
        for m in self.messages:
            if not context and m.role != "user":
                continue
            if context and context[-1]["role"] == m.role:
                context[-1]["content"] += "\n\n" + m.content
            else:
                context.append({"role": m.role, "content": m.content})
        return context
