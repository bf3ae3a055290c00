"""
Conversation engine: the multi-turn tool-use loop.

Each pass compresses the log if needed, requests one model turn, and either
executes the requested tools and loops, or appends the final answer and
returns.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, Union

from dotenv import load_dotenv

from yagi._exceptions import ChatInterrupted, ConversationError, Interrupted
from yagi.adapters import OpenAIRequestAdapter
from yagi.cancel import CancelToken
from yagi.compression import (
    DEFAULT_COMPRESS_THRESHOLD,
    DEFAULT_MAX_CONTEXT_CHARS,
    DEFAULT_SUMMARY_TIMEOUT,
    ContextCompressor,
)
from yagi.executor import ToolApprover, ToolExecutor
from yagi.params import normalize_params
from yagi.registry import ToolRegistry
from yagi.runner import DEFAULT_BASE_DELAY, DEFAULT_MAX_RETRIES, RequestRunner
from yagi.types import ChatMessage, ChatOptions, ChatResult, ToolHandler

__all__ = ["Engine", "EngineConfig"]

DEFAULT_MAX_AUTONOMOUS_ITER = 20


def _env_number(name: str, cast: Callable[[str], Any], default: Any) -> Any:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass
class EngineConfig:
    """Construction-time settings for an ``Engine``.

    Non-positive numbers fall back to their defaults.
    """

    client: Any = None
    model: str = ""

    system_message: Optional[Callable[[Optional[str]], str]] = None
    approver: Optional[ToolApprover] = None

    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_delay: float = DEFAULT_BASE_DELAY
    max_autonomous_iter: int = DEFAULT_MAX_AUTONOMOUS_ITER
    compress_threshold: int = DEFAULT_COMPRESS_THRESHOLD
    max_context_chars: int = DEFAULT_MAX_CONTEXT_CHARS
    summary_timeout: float = DEFAULT_SUMMARY_TIMEOUT

    # Extra request parameters (temperature, reasoning_effort, ...)
    params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.max_retries <= 0:
            self.max_retries = DEFAULT_MAX_RETRIES
        if self.retry_base_delay <= 0:
            self.retry_base_delay = DEFAULT_BASE_DELAY
        if self.max_autonomous_iter <= 0:
            self.max_autonomous_iter = DEFAULT_MAX_AUTONOMOUS_ITER
        if self.compress_threshold <= 0:
            self.compress_threshold = DEFAULT_COMPRESS_THRESHOLD
        if self.max_context_chars <= 0:
            self.max_context_chars = DEFAULT_MAX_CONTEXT_CHARS
        if self.summary_timeout <= 0:
            self.summary_timeout = DEFAULT_SUMMARY_TIMEOUT

    @classmethod
    def from_env(cls, **overrides: Any) -> "EngineConfig":
        """Build a config from ``YAGI_*`` environment variables (``.env`` aware)."""
        load_dotenv()
        values: dict[str, Any] = {
            "max_retries": _env_number("YAGI_MAX_RETRIES", int, DEFAULT_MAX_RETRIES),
            "max_autonomous_iter": _env_number(
                "YAGI_MAX_AUTONOMOUS_ITER", int, DEFAULT_MAX_AUTONOMOUS_ITER
            ),
            "compress_threshold": _env_number(
                "YAGI_COMPRESS_THRESHOLD", int, DEFAULT_COMPRESS_THRESHOLD
            ),
            "max_context_chars": _env_number(
                "YAGI_MAX_CONTEXT_CHARS", int, DEFAULT_MAX_CONTEXT_CHARS
            ),
            "summary_timeout": _env_number(
                "YAGI_SUMMARY_TIMEOUT", float, DEFAULT_SUMMARY_TIMEOUT
            ),
        }
        values.update(overrides)
        return cls(**values)


class Engine:
    """
    Drives conversations against an OpenAI-compatible streaming API.

    The client, model and tool registry can be swapped mid-session (e.g. a
    runtime model switch); reads and writes of that state go through one lock.
    A single conversation must not run two ``chat`` calls at once.
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        registry: Optional[ToolRegistry] = None,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.name = name if name is not None else self.__class__.__name__
        self.config = config

        self._lock = threading.Lock()
        self._client = config.client
        self._model = config.model
        self._registry = registry if registry is not None else ToolRegistry()

        self._adapter = OpenAIRequestAdapter()
        self._runner = RequestRunner(
            max_retries=config.max_retries,
            base_delay=config.retry_base_delay,
            system_message=config.system_message,
            params=normalize_params(config.params) if config.params else None,
            adapter=self._adapter,
            logger=self.logger,
        )
        self._compressor = ContextCompressor(
            threshold=config.compress_threshold,
            max_context_chars=config.max_context_chars,
            timeout=config.summary_timeout,
            logger=self.logger,
        )

    # --- shared state ------------------------------------------------------
    @property
    def client(self) -> Any:
        with self._lock:
            return self._client

    def set_client(self, client: Any) -> None:
        with self._lock:
            self._client = client

    @property
    def model(self) -> str:
        with self._lock:
            return self._model

    def set_model(self, model: str) -> None:
        with self._lock:
            self._model = model

    @property
    def registry(self) -> ToolRegistry:
        with self._lock:
            return self._registry

    def set_registry(self, registry: ToolRegistry) -> None:
        """Swap the whole tool registry."""
        with self._lock:
            self._registry = registry

    def _snapshot(self) -> tuple[Any, str, ToolRegistry]:
        with self._lock:
            return self._client, self._model, self._registry

    # --- tools -------------------------------------------------------------
    def register_tool(
        self,
        name: str,
        description: str,
        parameters: Union[dict[str, Any], str],
        handler: ToolHandler,
        safe: bool = False,
    ) -> None:
        self.registry.register(name, description, parameters, handler, safe)

    def has_tool(self, name: str) -> bool:
        return name in self.registry

    def tools(self) -> list[dict[str, Any]]:
        return self.registry.definitions()

    def _executor(self, registry: ToolRegistry) -> ToolExecutor:
        return ToolExecutor(registry, approver=self.config.approver, logger=self.logger)

    async def execute_tool(
        self,
        name: str,
        arguments: str,
        *,
        token: Optional[CancelToken] = None,
        require_approval: bool = True,
    ) -> str:
        """Run a single tool outside the conversation loop; errors come back as text."""
        result, _ = await self._executor(self.registry).execute(
            name, arguments, token=token, require_approval=require_approval
        )
        return result

    # --- conversation ------------------------------------------------------
    async def _complete(self, messages: list[ChatMessage], token: CancelToken) -> str:
        client, model, _ = self._snapshot()
        turn = await self._runner.run_turn(client, model, messages, token=token)
        return turn.content

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        options: Optional[ChatOptions] = None,
        *,
        token: Optional[CancelToken] = None,
    ) -> ChatResult:
        """
        Run the conversation loop until the model answers without tool calls.

        Args:
            messages: Conversation so far (may be a resumed session).
            options: Skill, autonomous mode and observer callbacks.
            token: Cancellation signal for this user turn.

        Returns:
            ChatResult with the final text and the updated log. When autonomous
            mode hits its iteration cap, ``content`` is empty and
            ``stopped_early`` is True.

        Raises:
            ChatInterrupted: ``token`` was cancelled.
            ConversationError: the model turn failed after all retries.
            Both carry ``messages``, the log accumulated so far.
        """
        options = options or ChatOptions()
        token = token or CancelToken()
        messages = list(messages)

        iteration = 0
        while True:
            iteration += 1
            if options.autonomous and iteration > self.config.max_autonomous_iter:
                self._log(
                    f"Autonomous iteration limit ({self.config.max_autonomous_iter}) reached",
                    logging.WARNING,
                )
                return ChatResult(content="", messages=messages, stopped_early=True)

            messages = await self._compressor.compress(
                messages,
                lambda request: self._complete(request, token),
                options,
            )

            client, model, registry = self._snapshot()
            try:
                turn = await self._runner.run_turn(
                    client,
                    model,
                    messages,
                    tools=registry.definitions(),
                    options=options,
                    token=token,
                )
            except Exception as exc:
                if token.cancelled or isinstance(exc, Interrupted):
                    raise ChatInterrupted("interrupted", messages, exc) from exc
                self._log(f"Conversation aborted: {exc}", logging.ERROR)
                raise ConversationError(str(exc), messages, exc) from exc

            if not turn.tool_calls:
                messages.append(self._adapter.assistant_message_from(turn))
                return ChatResult(content=turn.content, messages=messages)

            messages.append(self._adapter.assistant_message_from(turn))
            self._log(
                f"Executing {len(turn.tool_calls)} tool call(s): "
                + ", ".join(tc.name for tc in turn.tool_calls),
                logging.DEBUG,
            )
            results = await self._executor(registry).execute_batch(
                turn.tool_calls,
                options=options,
                token=token,
                require_approval=not options.autonomous,
            )
            messages.extend(self._adapter.tool_result_message(r) for r in results)

            if token.cancelled:
                raise ChatInterrupted("interrupted", messages)

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")
