"""Scripted stand-ins for an AsyncOpenAI client and its chunk streams."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Optional, Sequence

from openai.types.chat import ChatCompletionChunk
from openai.types.chat.chat_completion_chunk import (
    Choice,
    ChoiceDelta,
    ChoiceDeltaToolCall,
    ChoiceDeltaToolCallFunction,
)


def make_chunk(
    content: Optional[str] = None,
    *,
    tool_calls: Optional[list[ChoiceDeltaToolCall]] = None,
    finish_reason: Optional[str] = None,
    **delta_extra: Any,
) -> ChatCompletionChunk:
    return ChatCompletionChunk(
        id="chunk",
        object="chat.completion.chunk",
        created=0,
        model="test-model",
        choices=[
            Choice(
                index=0,
                delta=ChoiceDelta(content=content, tool_calls=tool_calls, **delta_extra),
                finish_reason=finish_reason,
            )
        ],
    )


def tool_delta(
    index: int,
    *,
    id: Optional[str] = None,
    name: Optional[str] = None,
    arguments: Optional[str] = None,
) -> ChoiceDeltaToolCall:
    return ChoiceDeltaToolCall(
        index=index,
        id=id,
        type="function" if id else None,
        function=ChoiceDeltaToolCallFunction(name=name, arguments=arguments),
    )


def text_turn(*parts: str) -> list[ChatCompletionChunk]:
    """Chunks for a plain answer split into ``parts``."""
    chunks = [make_chunk(part) for part in parts]
    chunks.append(make_chunk(finish_reason="stop"))
    return chunks


def tool_turn(*calls: tuple[str, str, str]) -> list[ChatCompletionChunk]:
    """Chunks requesting ``(id, name, arguments)`` tool calls, one chunk each."""
    chunks = [
        make_chunk(tool_calls=[tool_delta(i, id=call_id, name=name, arguments=args)])
        for i, (call_id, name, args) in enumerate(calls)
    ]
    chunks.append(make_chunk(finish_reason="tool_calls"))
    return chunks


class FakeStream:
    """Async iterable of chunks that optionally fails after yielding them."""

    def __init__(self, chunks: Sequence[Any], error: Optional[BaseException] = None) -> None:
        self.chunks = list(chunks)
        self.error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self.chunks:
            yield chunk
        if self.error is not None:
            raise self.error

    async def close(self) -> None:
        self.closed = True


class FakeClient:
    """
    Minimal ``AsyncOpenAI`` shape: ``client.chat.completions.create(**kw)``.

    Each scripted response is a list of chunks, a FakeStream, or an exception
    to raise from ``create``. Requests are recorded in ``requests``.
    """

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.requests: list[dict[str, Any]] = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    async def _create(self, **kwargs: Any) -> FakeStream:
        self.requests.append(kwargs)
        if not self.responses:
            raise AssertionError("unexpected model request")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, FakeStream):
            return response
        return FakeStream(response)
