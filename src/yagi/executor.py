"""Tool call execution for one model turn.

Every call in a batch runs as its own task; results come back in request
order no matter which task finishes first. Failures never escape: unknown
tools, denied approvals and handler errors all become result text the model
can read and react to.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol, Sequence

from yagi._exceptions import Interrupted
from yagi.cancel import CancelToken
from yagi.registry import ToolRegistry
from yagi.types import ChatOptions, ToolCallRequest, ToolCallResult

__all__ = ["ToolApprover", "ToolExecutor", "CANCELLED_RESULT"]

CANCELLED_RESULT = "[Tool execution cancelled - user interrupted]"


class ToolApprover(Protocol):
    """Decides whether a non-safe tool may run. Owns any memory of past answers."""

    async def approve(self, name: str, arguments: str) -> bool:
        ...


class ToolExecutor:
    """Resolves approval policy and runs tool calls against a registry."""

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        approver: Optional[ToolApprover] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.registry = registry
        self.approver = approver
        self.logger = logger or logging.getLogger(__name__)

    def _suggest_alternatives(self, name: str) -> str:
        available = self.registry.alternatives(name)
        if not available:
            return ""
        return f" (alternatives: {', '.join(available)})"

    async def execute(
        self,
        name: str,
        arguments: str,
        *,
        token: Optional[CancelToken] = None,
        require_approval: bool = True,
    ) -> tuple[str, bool]:
        """Run one tool and return ``(result_text, is_error)``."""
        token = token or CancelToken()
        registration = self.registry.get(name)
        if registration is None:
            self.logger.warning("Model requested unknown tool %s", name)
            return f"Unknown tool: {name}", True

        if require_approval and not registration.safe and self.approver is not None:
            try:
                approved = await token.run(self.approver.approve(name, arguments))
            except Interrupted:
                return CANCELLED_RESULT, True
            except Exception as exc:
                self.logger.error("Approval for %s failed: %s", name, exc)
                return f"Error: approval failed: {exc}", True
            if not approved:
                return "Error: Tool not approved by user", True

        try:
            result = await token.run(registration.handler(arguments, token))
        except Interrupted:
            return CANCELLED_RESULT, True
        except Exception as exc:
            self.logger.warning("Tool %s failed: %s", name, exc)
            return f"Error: {exc}{self._suggest_alternatives(name)}", True
        if not isinstance(result, str):
            result = str(result)
        return result, False

    async def execute_batch(
        self,
        calls: Sequence[ToolCallRequest],
        *,
        options: Optional[ChatOptions] = None,
        token: Optional[CancelToken] = None,
        require_approval: bool = True,
    ) -> list[ToolCallResult]:
        """Run every call concurrently; results are in the order of ``calls``."""
        options = options or ChatOptions()
        token = token or CancelToken()

        async def run_one(call: ToolCallRequest) -> ToolCallResult:
            options.notify("on_tool_call", call.name, call.arguments, logger=self.logger)
            output, is_error = await self.execute(
                call.name,
                call.arguments,
                token=token,
                require_approval=require_approval,
            )
            if is_error:
                options.notify("on_tool_error", call.name, output, logger=self.logger)
            else:
                options.notify("on_tool_result", call.name, output, logger=self.logger)
            return ToolCallResult(id=call.id, name=call.name, content=output, is_error=is_error)

        return list(await asyncio.gather(*(run_one(call) for call in calls)))
