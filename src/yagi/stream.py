"""Streaming assembly for one model turn."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, Optional

from yagi.types import ChatOptions, ToolCallRequest, TurnResult

__all__ = ["assemble_stream", "FINISH_TOOL_CALLS"]

FINISH_TOOL_CALLS = "tool_calls"

_logger = logging.getLogger(__name__)


@dataclass
class _PartialToolCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


def _reasoning_delta(delta: Any) -> Optional[str]:
    # Not part of the OpenAI schema; providers put it in extra fields.
    for attr in ("reasoning_content", "reasoning"):
        value = getattr(delta, attr, None)
        if isinstance(value, str) and value:
            return value
    return None


async def assemble_stream(
    chunks: AsyncIterable[Any],
    options: Optional[ChatOptions] = None,
    *,
    logger: Optional[logging.Logger] = None,
) -> TurnResult:
    """
    Consume a stream of ChatCompletionChunks and rebuild the turn.

    Content deltas are forwarded to ``options.on_content`` as they arrive and
    reasoning deltas to ``options.on_reasoning``; neither waits for the end of
    the stream. Tool-call deltas are keyed by their position index (0 when the
    provider omits it): the first delta for an index opens a record, later
    ones append name and argument fragments and replace the id when a
    non-empty one arrives.

    Tool calls are only emitted when the final finish reason is
    ``"tool_calls"``, in ascending index order.

    Args:
        chunks: Async iterable of ChatCompletionChunk objects
        options: Observer callbacks; may be None

    Returns:
        The assembled TurnResult

    Raises:
        Whatever the underlying stream raises while reading.
    """
    options = options or ChatOptions()
    log = logger or _logger

    text_parts: list[str] = []
    partials: dict[int, _PartialToolCall] = {}
    finish_reason: Optional[str] = None

    async for chunk in chunks:
        if not chunk.choices:
            continue

        choice = chunk.choices[0]
        if choice.finish_reason:
            finish_reason = choice.finish_reason

        delta = choice.delta
        if delta is None:
            continue

        reasoning = _reasoning_delta(delta)
        if reasoning:
            options.notify("on_reasoning", reasoning, logger=log)

        if delta.content:
            options.notify("on_content", delta.content, logger=log)
            text_parts.append(delta.content)

        for tc_chunk in delta.tool_calls or ():
            index = tc_chunk.index if tc_chunk.index is not None else 0
            partial = partials.get(index)
            if partial is None:
                partial = partials[index] = _PartialToolCall()
            if tc_chunk.id:
                partial.id = tc_chunk.id
            function = tc_chunk.function
            if function is not None:
                if function.name:
                    partial.name += function.name
                if function.arguments:
                    partial.arguments += function.arguments

    tool_calls: list[ToolCallRequest] = []
    if finish_reason == FINISH_TOOL_CALLS:
        for index in sorted(partials):
            partial = partials[index]
            tool_calls.append(
                ToolCallRequest(id=partial.id, name=partial.name, arguments=partial.arguments)
            )
    elif partials:
        log.debug(
            "Dropping %d partial tool call(s); finish reason was %r",
            len(partials),
            finish_reason,
        )

    return TurnResult(
        content="".join(text_parts),
        tool_calls=tool_calls,
        finish_reason=finish_reason,
    )
