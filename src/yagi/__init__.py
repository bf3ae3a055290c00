"""
yagi - conversation engine for a tool-using chat agent on OpenAI-compatible APIs.
"""

from ._exceptions import (
    ChatInterrupted,
    ConversationError,
    Interrupted,
    ProviderError,
    RetriesExhaustedError,
    YagiError,
)
from .cancel import CancelToken
from .engine import Engine, EngineConfig
from .executor import ToolApprover
from .factory import create_client
from .providers import DEFAULT_PROVIDERS, Provider, find_provider, get_api_key, load_providers
from .registry import ToolRegistry
from .types import (
    ChatMessage,
    ChatOptions,
    ChatResult,
    ToolCallRequest,
    ToolCallResult,
    user_message,
)

__version__ = "0.1.0"

__all__ = [
    "Engine",
    "EngineConfig",
    "CancelToken",
    "ChatMessage",
    "ChatOptions",
    "ChatResult",
    "ToolApprover",
    "ToolRegistry",
    "ToolCallRequest",
    "ToolCallResult",
    "user_message",
    "create_client",
    "Provider",
    "DEFAULT_PROVIDERS",
    "find_provider",
    "load_providers",
    "get_api_key",
    "YagiError",
    "Interrupted",
    "RetriesExhaustedError",
    "ConversationError",
    "ChatInterrupted",
    "ProviderError",
]
