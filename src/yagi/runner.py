"""Retrying request runner: one model turn with bounded exponential backoff."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Sequence

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from yagi._exceptions import Interrupted, RetriesExhaustedError, classify_error
from yagi.adapters import OpenAIRequestAdapter
from yagi.cancel import CancelToken
from yagi.stream import assemble_stream
from yagi.types import ChatMessage, ChatOptions, TurnResult, system_message

__all__ = ["RequestRunner"]

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0


class RequestRunner:
    """
    Runs exactly one model turn: request, stream, assemble.

    Connection failures and failures while reading the stream both count as
    a failed attempt. Attempt ``n`` (n >= 1) waits ``base_delay * 2**(n-1)``
    seconds first. The cancellation token is checked before every wait and
    every attempt; when it has fired, the last transport error is raised
    instead of a generic interruption so callers can tell "ran out of
    retries" from "user interrupted" by checking the token.
    """

    def __init__(
        self,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        system_message: Optional[Callable[[Optional[str]], str]] = None,
        params: Optional[dict[str, Any]] = None,
        adapter: Optional[OpenAIRequestAdapter] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.max_retries = max_retries if max_retries > 0 else DEFAULT_MAX_RETRIES
        self.base_delay = base_delay if base_delay > 0 else DEFAULT_BASE_DELAY
        self.wait = wait_exponential(multiplier=self.base_delay)
        self.system_message = system_message
        self.params = params
        self.adapter = adapter or OpenAIRequestAdapter()
        self.logger = logger or logging.getLogger(__name__)

    def with_system(self, messages: Sequence[ChatMessage], skill: Optional[str]) -> list[ChatMessage]:
        """Prepend the configured system message unless the log already starts with one."""
        messages = list(messages)
        if self.system_message is None:
            return messages
        text = self.system_message(skill)
        if text and (not messages or messages[0].get("role") != "system"):
            messages.insert(0, system_message(text))
        return messages

    async def run_turn(
        self,
        client: Any,
        model: str,
        messages: Sequence[ChatMessage],
        *,
        tools: Optional[Sequence[dict[str, Any]]] = None,
        options: Optional[ChatOptions] = None,
        token: Optional[CancelToken] = None,
    ) -> TurnResult:
        """
        Execute one model turn with automatic retry.

        Args:
            client: An ``AsyncOpenAI``-compatible client.
            model: Model identifier for this turn.
            messages: Conversation log used as context.
            tools: Tool declarations; omitted from the request when empty.
            options: Skill and observer callbacks.
            token: Cancellation signal for this turn.

        Raises:
            RetriesExhaustedError: every attempt failed.
            Exception: the last transport error, when cancelled after a failure.
            Interrupted: cancelled before any attempt failed.
        """
        options = options or ChatOptions()
        token = token or CancelToken()
        request = self.adapter.to_provider(
            self.with_system(messages, options.skill),
            model=model,
            tools=tools,
            params=self.params,
        )

        last_error: Optional[BaseException] = None

        async def interruptible_sleep(seconds: float) -> None:
            if await token.sleep(seconds):
                raise last_error

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self.wait,
            sleep=interruptible_sleep,
            retry=(
                retry_if_exception_type(Exception)
                & retry_if_exception(lambda exc: not isinstance(exc, Interrupted) and not token.cancelled)
            ),
            before_sleep=before_sleep_log(self.logger, logging.WARNING),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    try:
                        return await token.run(self._attempt(client, request, options))
                    except Interrupted:
                        if last_error is not None:
                            raise last_error
                        raise
                    except Exception as exc:
                        last_error = exc
                        raise
        except RetryError as err:
            attempts = err.last_attempt.attempt_number
            self.logger.error(
                "Model request failed after %d attempts: %s",
                attempts,
                classify_error(last_error, self.logger),
            )
            raise RetriesExhaustedError(attempts, last_error) from last_error

    async def _attempt(
        self, client: Any, request: dict[str, Any], options: ChatOptions
    ) -> TurnResult:
        self.logger.debug(
            "Sending request to model %s (%d messages)", request["model"], len(request["messages"])
        )
        stream = await client.chat.completions.create(**request)
        try:
            return await assemble_stream(stream, options, logger=self.logger)
        finally:
            close = getattr(stream, "close", None)
            if close:
                await close()
