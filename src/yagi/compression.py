"""Context compression: replace the oldest span of a long log with a summary.

Sizes are measured in characters (message text plus tool-call argument
text) as a cheap stand-in for tokens.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from yagi.adapters import OpenAIRequestAdapter
from yagi.types import ChatMessage, ChatOptions, message_text, system_message, user_message

__all__ = [
    "ContextCompressor",
    "estimate_chars",
    "SUMMARY_PREFIX",
    "SUMMARY_ACK",
]

DEFAULT_COMPRESS_THRESHOLD = 80_000
DEFAULT_MAX_CONTEXT_CHARS = 100_000
DEFAULT_SUMMARY_TIMEOUT = 60.0

TOOL_RESULT_PREVIEW_CHARS = 500

_ADAPTER = OpenAIRequestAdapter()

SUMMARY_PREFIX = "[Previous conversation summary]\n"
SUMMARY_ACK = "Understood. I have the context from our previous conversation."

SUMMARY_SYSTEM_PROMPT = (
    "Summarize the following conversation concisely. Preserve key decisions, "
    "file paths, code changes, and important context. Write in the same "
    "language as the conversation. Keep it under 500 characters."
)

# Completes a tool-free request and returns the text.
Summarizer = Callable[[list[ChatMessage]], Awaitable[str]]


def message_chars(msg: ChatMessage) -> int:
    return len(message_text(msg)) + sum(len(tc.arguments) for tc in _ADAPTER.tool_calls_from(msg))


def estimate_chars(messages: Sequence[ChatMessage]) -> int:
    return sum(message_chars(m) for m in messages)


def render_transcript(messages: Sequence[ChatMessage]) -> str:
    """Flatten messages to role-prefixed lines; tool results are truncated."""
    lines = []
    for msg in messages:
        role = msg.get("role")
        text = message_text(msg)
        if role == "user":
            lines.append(f"User: {text}")
        elif role == "assistant":
            calls = "".join(f"[tool: {tc.name}]" for tc in _ADAPTER.tool_calls_from(msg))
            lines.append(f"Assistant: {text}{calls}")
        elif role == "tool":
            if len(text) > TOOL_RESULT_PREVIEW_CHARS:
                text = text[:TOOL_RESULT_PREVIEW_CHARS] + "..."
            lines.append(f"Tool result: {text}")
    return "".join(line + "\n" for line in lines)


class ContextCompressor:
    """Summarizes the oldest turns once the log grows past a threshold."""

    def __init__(
        self,
        *,
        threshold: int = DEFAULT_COMPRESS_THRESHOLD,
        max_context_chars: int = DEFAULT_MAX_CONTEXT_CHARS,
        timeout: float = DEFAULT_SUMMARY_TIMEOUT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.threshold = threshold if threshold > 0 else DEFAULT_COMPRESS_THRESHOLD
        self.max_context_chars = (
            max_context_chars if max_context_chars > 0 else DEFAULT_MAX_CONTEXT_CHARS
        )
        self.timeout = timeout if timeout > 0 else DEFAULT_SUMMARY_TIMEOUT
        self.logger = logger or logging.getLogger(__name__)

    def find_window(self, messages: Sequence[ChatMessage]) -> Optional[tuple[int, int]]:
        """
        Locate the span ``messages[start:end]`` to summarize, or None.

        The span starts after a leading system message, drops messages from
        the front until the remainder fits in half of ``max_context_chars``
        (always keeping the last two), then extends forward so that
        ``messages[end]`` is a user message.
        """
        start = 1 if messages and messages[0].get("role") == "system" else 0
        if start >= len(messages):
            return None

        end = start
        kept = estimate_chars(messages[start:])
        while end < len(messages) - 2 and kept > self.max_context_chars // 2:
            kept -= message_chars(messages[end])
            end += 1

        if end <= start:
            return None

        while end < len(messages) and messages[end].get("role") != "user":
            end += 1
        if end >= len(messages):
            return None
        return start, end

    async def compress(
        self,
        messages: list[ChatMessage],
        summarize: Summarizer,
        options: Optional[ChatOptions] = None,
    ) -> list[ChatMessage]:
        """
        Return ``messages`` unchanged, or a new list with the oldest span
        replaced by a summary pair.

        Best effort: a failed, timed-out or empty summary leaves the log as is.
        """
        options = options or ChatOptions()
        chars = estimate_chars(messages)
        if chars < self.threshold:
            return messages

        window = self.find_window(messages)
        if window is None:
            self.logger.debug("No compression window in %d messages", len(messages))
            return messages
        start, end = window

        request = [
            system_message(SUMMARY_SYSTEM_PROMPT),
            user_message(render_transcript(messages[start:end])),
        ]
        try:
            async with asyncio.timeout(self.timeout):
                summary = await summarize(request)
        except Exception as exc:
            self.logger.warning("Context summarization failed, skipping: %s", exc)
            return messages

        summary = (summary or "").strip()
        if not summary:
            self.logger.warning("Context summarization returned nothing, skipping")
            return messages

        self.logger.info(
            "Compressed %d messages (%d chars) into a summary", end - start, chars
        )
        options.notify("on_compressed", chars, logger=self.logger)
        return [
            *messages[:start],
            user_message(SUMMARY_PREFIX + summary),
            {"role": "assistant", "content": SUMMARY_ACK},
            *messages[end:],
        ]
