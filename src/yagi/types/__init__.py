from .chat import (
    ChatMessage,
    ChatOptions,
    ChatResult,
    TurnResult,
    message_text,
    system_message,
    user_message,
)
from .tool import ToolCallRequest, ToolCallResult, ToolHandler, ToolRegistration

__all__ = [
    "ChatMessage",
    "ChatOptions",
    "ChatResult",
    "TurnResult",
    "message_text",
    "system_message",
    "user_message",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolHandler",
    "ToolRegistration",
]
