"""Chat-level types: messages, per-call options, turn and conversation results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

from yagi.types.tool import ToolCallRequest

# Type alias for chat messages (chat-completions wire shape)
ChatMessage = dict[str, Any]

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
ROLE_TOOL = "tool"


def user_message(content: str) -> ChatMessage:
    return {"role": ROLE_USER, "content": content}


def system_message(content: str) -> ChatMessage:
    return {"role": ROLE_SYSTEM, "content": content}


def message_text(msg: ChatMessage) -> str:
    """Text content of a message; ``None`` and missing content read as empty."""
    content = msg.get("content")
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    # multi-part content from resumed sessions
    parts = []
    for part in content:
        if isinstance(part, dict):
            parts.append(str(part.get("text", "")))
        else:
            parts.append(str(part))
    return "".join(parts)


@dataclass
class ChatOptions:
    """
    Per-call options and observer callbacks for ``Engine.chat``.

    Callbacks are advisory: they are invoked for display and logging only,
    and an exception raised by one is logged and otherwise ignored.
    """

    skill: Optional[str] = None
    autonomous: bool = False
    on_content: Optional[Callable[[str], None]] = None
    on_reasoning: Optional[Callable[[str], None]] = None
    on_tool_call: Optional[Callable[[str, str], None]] = None
    on_tool_result: Optional[Callable[[str, str], None]] = None
    on_tool_error: Optional[Callable[[str, str], None]] = None
    on_compressed: Optional[Callable[[int], None]] = None

    def notify(self, name: str, *args: Any, logger: Optional[logging.Logger] = None) -> None:
        """Invoke the callback ``name`` if set, logging anything it raises."""
        callback = getattr(self, name)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            (logger or logging.getLogger(__name__)).exception("Observer %s raised", name)


@dataclass
class TurnResult:
    """Output of one model round: assembled text and complete tool-call requests."""

    content: str = ""
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """
    Outcome of ``Engine.chat``.

    Unpacks as ``content, messages = result``.
    ``stopped_early`` is True when autonomous mode hit its iteration cap.
    """

    content: str
    messages: list[ChatMessage]
    stopped_early: bool = False

    def __iter__(self) -> Iterator[Any]:
        yield self.content
        yield self.messages

    def __repr__(self) -> str:
        preview = self.content[:75] + "..." if len(self.content) > 75 else self.content
        return (
            f"{self.__class__.__name__}(content={preview!r}, "
            f"messages={len(self.messages)}, stopped_early={self.stopped_early})"
        )
