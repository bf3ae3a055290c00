"""
Batch protocol over stdin/stdout, one JSON object per line.

Two request shapes are accepted on the same stream:

- JSON-RPC 2.0 (the object has a ``"jsonrpc"`` key), methods ``chat``
  (``{"messages": [...], "stream": bool}``) and ``tool``
  (``{"name": str, "arguments": str}``).
- Plain line-delimited objects: ``{"messages": [...], "stream": bool}`` for a
  chat, or ``{"tool": str, "arguments": str}`` for a single tool call.

Responses are ``{"content", "done", "error"}`` objects (empty fields
omitted), wrapped in a JSON-RPC envelope for JSON-RPC requests. A streaming
chat emits one object per content delta followed by ``{"done": true}``.
When a chat hits the autonomous iteration cap, the final object also carries
a ``"notice"`` string.

Tool requests never prompt for approval; stdin carries the protocol.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import IO, Any, Callable, Optional

from yagi._exceptions import YagiError
from yagi.engine import Engine
from yagi.types import ChatOptions

__all__ = ["StdioServer"]


class StdioServer:
    """Serves chat and tool requests for non-interactive callers."""

    def __init__(
        self,
        engine: Engine,
        *,
        reader: Optional[IO[str]] = None,
        writer: Optional[IO[str]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.engine = engine
        self.reader = reader or sys.stdin
        self.writer = writer or sys.stdout
        self.logger = logger or logging.getLogger(__name__)

    async def serve(self) -> None:
        """Handle lines until EOF."""
        while True:
            line = await asyncio.to_thread(self.reader.readline)
            if not line:
                break
            await self.handle_line(line)

    async def handle_line(self, line: str) -> None:
        line = line.strip()
        if not line:
            return
        try:
            request = json.loads(line)
        except json.JSONDecodeError as exc:
            self._write({"error": f"Invalid JSON: {exc.msg}"})
            return
        if not isinstance(request, dict):
            self._write({"error": "Invalid request: expected a JSON object"})
            return

        if "jsonrpc" in request:
            await self._handle_jsonrpc(request)
        else:
            await self._handle_plain(request)

    async def _handle_plain(self, request: dict[str, Any]) -> None:
        if "tool" in request:
            result = await self.engine.execute_tool(
                str(request["tool"]),
                _arguments_text(request.get("arguments")),
                require_approval=False,
            )
            self._write(_response(content=result, done=True))
            return
        await self._chat(request, self._write)

    async def _handle_jsonrpc(self, request: dict[str, Any]) -> None:
        req_id = request.get("id")
        method = request.get("method")
        params = request.get("params") or {}

        def emit(payload: dict[str, Any]) -> None:
            if "error" in payload:
                self._write_rpc_error(req_id, "Chat error", payload["error"])
            else:
                self._write({"jsonrpc": "2.0", "id": req_id, "result": payload})

        if not isinstance(params, dict):
            self._write_rpc_error(req_id, "Invalid params", "params must be an object")
            return

        if method == "chat":
            await self._chat(params, emit)
        elif method == "tool":
            if not params.get("name"):
                self._write_rpc_error(req_id, "Invalid params", "name is required")
                return
            result = await self.engine.execute_tool(
                str(params["name"]),
                _arguments_text(params.get("arguments")),
                require_approval=False,
            )
            emit(_response(content=result, done=True))
        else:
            self._write_rpc_error(req_id, "Method not found", f"Unknown method: {method}")

    async def _chat(self, request: dict[str, Any], emit: Callable[[dict[str, Any]], None]) -> None:
        messages = request.get("messages")
        if not isinstance(messages, list):
            emit({"error": "Invalid request: messages must be a list"})
            return
        for index, message in enumerate(messages):
            if not isinstance(message, dict) or not isinstance(message.get("role"), str):
                emit(
                    {"error": f"Invalid request: messages[{index}] must be an object with a string role"}
                )
                return

        stream = bool(request.get("stream"))
        options = ChatOptions(autonomous=True)
        if stream:
            options.on_content = lambda text: emit(_response(content=text))

        try:
            result = await self.engine.chat(messages, options)
        except YagiError as exc:
            self.logger.error("Chat request failed: %s", exc)
            emit({"error": str(exc)})
            return

        payload = _response(done=True) if stream else _response(content=result.content, done=True)
        if result.stopped_early:
            limit = self.engine.config.max_autonomous_iter
            self.logger.warning("Chat stopped at the autonomous limit of %d iterations", limit)
            payload["notice"] = f"stopped: autonomous limit of {limit} iterations reached"
        emit(payload)

    def _write_rpc_error(self, req_id: Any, message: str, data: Any) -> None:
        self._write(
            {"jsonrpc": "2.0", "id": req_id, "error": {"message": message, "data": data}}
        )

    def _write(self, payload: dict[str, Any]) -> None:
        self.writer.write(json.dumps(payload, ensure_ascii=False) + "\n")
        self.writer.flush()


def _response(content: str = "", done: bool = False) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if content:
        payload["content"] = content
    if done:
        payload["done"] = True
    return payload


def _arguments_text(arguments: Any) -> str:
    if arguments is None:
        return "{}"
    if isinstance(arguments, str):
        return arguments
    return json.dumps(arguments)
