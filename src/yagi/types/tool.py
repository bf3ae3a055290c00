"""
Provider-neutral dataclasses for client-side tool use.

The OpenAI wire shape lives in the adapter.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

if TYPE_CHECKING:
    from yagi.cancel import CancelToken

__all__ = ["ToolHandler", "ToolCallRequest", "ToolCallResult", "ToolRegistration"]

ToolHandler = Callable[[str, "CancelToken"], Awaitable[str]]


@dataclass(slots=True)
class ToolCallRequest:
    """A request emitted by the model to call a local tool.

    ``arguments`` is the raw JSON text exactly as the model produced it;
    parsing it is the handler's job.
    """
    id: str
    name: str
    arguments: str


@dataclass(slots=True)
class ToolCallResult:
    """Payload to send back to the model after the tool finished running."""
    id: str                     # must match the request id
    name: str
    content: str
    is_error: bool = False


@dataclass(slots=True)
class ToolRegistration:
    """A callable tool: declaration for the model plus the local handler."""
    name: str
    description: str
    parameters: Union[dict[str, Any], str]
    handler: ToolHandler
    safe: bool = False
