"""OpenAI adapter for pure request/message transformations."""

from __future__ import annotations

import json
from typing import Any, Sequence

from yagi.params import request_kwargs
from yagi.types import (
    ChatMessage,
    ToolCallRequest,
    ToolCallResult,
    ToolRegistration,
    TurnResult,
)


class OpenAIRequestAdapter:
    """Adapter for converting between engine types and the chat-completions format."""

    def to_provider(
        self,
        messages: Sequence[ChatMessage],
        *,
        model: str,
        tools: Sequence[dict[str, Any]] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Build ``chat.completions.create`` keyword arguments for a streaming request."""
        wire = [self._wire_message(msg) for msg in messages]

        args: dict[str, Any] = {}
        if params:
            args.update(request_kwargs(params))
        args["model"] = model
        args["messages"] = wire
        args["stream"] = True
        # Some providers reject an empty tools array
        if tools:
            args["tools"] = list(tools)
        return args

    @staticmethod
    def _wire_message(msg: ChatMessage) -> dict[str, Any]:
        """Copy the fields the API accepts; assistant tool-call turns carry null content."""
        out: dict[str, Any] = {"role": msg["role"]}
        tool_calls = msg.get("tool_calls")
        if tool_calls:
            out["tool_calls"] = tool_calls
        content = msg.get("content")
        out["content"] = content if content is not None or tool_calls else ""
        for key in ("tool_call_id", "name"):
            if msg.get(key):
                out[key] = msg[key]
        return out

    def assistant_message_from(self, turn: TurnResult) -> ChatMessage:
        """Convert an assembled turn into the assistant ChatMessage to append."""
        if not turn.tool_calls:
            return {"role": "assistant", "content": turn.content}

        return {
            "role": "assistant",
            # null content alongside tool_calls
            "content": turn.content or None,
            "tool_calls": [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments},
                }
                for tc in turn.tool_calls
            ],
        }

    def tool_calls_from(self, msg: ChatMessage) -> list[ToolCallRequest]:
        """Read the tool-call requests back out of an assistant ChatMessage."""
        calls = []
        for tc in msg.get("tool_calls") or []:
            function = tc.get("function") or {}
            arguments = function.get("arguments", "")
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments)
            calls.append(
                ToolCallRequest(
                    id=tc.get("id", ""), name=function.get("name", ""), arguments=arguments
                )
            )
        return calls

    def tool_result_message(self, result: ToolCallResult) -> ChatMessage:
        """Convert a ToolCallResult to an OpenAI tool ChatMessage."""
        return {
            "role": "tool",
            "tool_call_id": result.id,
            "content": result.content,
        }

    def tool_definition(self, registration: ToolRegistration) -> dict[str, Any]:
        """Function declaration in the chat-completions ``tools`` format."""
        parameters = registration.parameters
        if isinstance(parameters, (str, bytes)):
            parameters = json.loads(parameters)
        return {
            "type": "function",
            "function": {
                "name": registration.name,
                "description": registration.description,
                "parameters": parameters,
            },
        }
