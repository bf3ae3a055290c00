"""
Translate noisy provider tracebacks into a unified `YagiError`, while
preserving the original exception for full tracebacks.
"""

from __future__ import annotations

import logging
from typing import Any, Final, Optional, Type

from openai import APIConnectionError, APIError, RateLimitError

__all__: tuple[str, ...] = (
    "YagiError",
    "Interrupted",
    "RetriesExhaustedError",
    "ConversationError",
    "ChatInterrupted",
    "ProviderError",
    "classify_error",
)


class YagiError(RuntimeError):
    """Public engine-level exception.

    Attributes:
        original_exc: The underlying provider exception, if any.
    """

    original_exc: Optional[BaseException]

    def __init__(self, message: str, original_exc: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.original_exc = original_exc
        if original_exc is not None:
            self.__cause__ = original_exc


class Interrupted(YagiError):
    """The turn's cancellation signal fired."""

    def __init__(self, message: str = "interrupted") -> None:
        super().__init__(message)


class RetriesExhaustedError(YagiError):
    """Every attempt of a model turn failed."""

    def __init__(self, attempts: int, original_exc: BaseException) -> None:
        super().__init__(f"failed after {attempts - 1} retries: {original_exc}", original_exc)
        self.attempts = attempts


class ConversationError(YagiError):
    """The conversation loop aborted; ``messages`` holds the log so far."""

    def __init__(
        self,
        message: str,
        messages: list[dict[str, Any]],
        original_exc: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, original_exc)
        self.messages = messages


class ChatInterrupted(ConversationError):
    """The conversation loop stopped because the caller cancelled it."""


class ProviderError(YagiError):
    """Unknown provider or missing credentials."""


CONN_ERRORS: Final[tuple[Type[Exception], ...]] = (
    APIConnectionError,
    TimeoutError,
    ConnectionError,
)


def classify_error(
    exc: BaseException,
    logger: Optional[logging.Logger] = None,
) -> str:
    """Return a friendly, concise description of a provider exception."""
    log = logger or logging.getLogger("yagi.exceptions")

    if isinstance(exc, RateLimitError):
        msg = "Rate-limit exceeded"
    elif isinstance(exc, CONN_ERRORS):
        msg = "Connection problem - unable to reach the LLM provider"
    elif isinstance(exc, APIError):
        status = getattr(exc, "status_code", "unknown")
        msg = f"API error ({status})"
    else:
        msg = exc.__class__.__name__

    log.debug("Classified provider exception", extra={"exc": exc})
    return f"{msg}: {exc}"
