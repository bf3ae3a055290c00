"""Pure transformation adapters for the chat-completions wire format."""

from .openai import OpenAIRequestAdapter

__all__ = [
    "OpenAIRequestAdapter",
]
