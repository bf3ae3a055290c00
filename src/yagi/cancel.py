"""Cancellation signal shared by one conversation turn.

A ``CancelToken`` is created per user-submitted input and passed down to the
runner, the compressor and every tool handler. Firing it aborts in-flight
model requests and tool handlers.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from yagi._exceptions import Interrupted

__all__ = ["CancelToken"]

T = TypeVar("T")


class CancelToken:
    """An ``asyncio.Event`` with helpers for racing work against it."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """
        Sleep for *seconds* unless cancelled first.

        Returns:
            True if the sleep was cut short by cancellation.
        """
        if self.cancelled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True

    async def run(self, aw: Awaitable[T]) -> T:
        """
        Await *aw*, cancelling it if the token fires first.

        Raises:
            Interrupted: the token fired before *aw* completed.
        """
        if self.cancelled:
            if asyncio.iscoroutine(aw):
                aw.close()
            raise Interrupted()

        work = asyncio.ensure_future(aw)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        raise Interrupted()
