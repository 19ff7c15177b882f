"""Tool invocation lifecycle and execution.

Every invocation moves ``requested → executing → result | failed`` (or
straight from ``requested`` to ``failed`` when the tool is unknown or its
arguments are invalid).  Whatever goes wrong inside a tool, the invocation
ends with an outcome the model can read: the tool's payload, or
``{"error": message}``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from loguru import logger
from pydantic import ValidationError

from agentchat.tools.base import Tool, ToolContext
from agentchat.tools.registry import ToolRegistry


class ToolCallState(StrEnum):
    REQUESTED = "requested"
    EXECUTING = "executing"
    RESULT = "result"
    FAILED = "failed"


_TRANSITIONS: dict[ToolCallState, frozenset[ToolCallState]] = {
    ToolCallState.REQUESTED: frozenset({ToolCallState.EXECUTING, ToolCallState.FAILED}),
    ToolCallState.EXECUTING: frozenset({ToolCallState.RESULT, ToolCallState.FAILED}),
    ToolCallState.RESULT: frozenset(),
    ToolCallState.FAILED: frozenset(),
}


class InvalidToolTransition(RuntimeError):
    pass


@dataclass
class ToolInvocation:
    tool_call_id: str
    tool_name: str
    args: dict[str, Any] = field(default_factory=dict)
    state: ToolCallState = ToolCallState.REQUESTED
    result: Any = None
    error: str | None = None
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def settled(self) -> bool:
        return self.state in (ToolCallState.RESULT, ToolCallState.FAILED)

    @property
    def duration_ms(self) -> int | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return int((self.finished_at - self.started_at) * 1000)

    def transition(self, new_state: ToolCallState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidToolTransition(
                f"{self.tool_name} ({self.tool_call_id}): {self.state} -> {new_state} is not allowed"
            )
        self.state = new_state

    def start(self) -> None:
        self.transition(ToolCallState.EXECUTING)
        self.started_at = time.perf_counter()

    def succeed(self, result: Any) -> None:
        self.transition(ToolCallState.RESULT)
        self.result = result
        self.finished_at = time.perf_counter()

    def fail(self, error: str) -> None:
        self.transition(ToolCallState.FAILED)
        self.error = error
        self.finished_at = time.perf_counter()

    def outcome(self) -> Any:
        """Payload reported back to the model and the client."""
        if self.state == ToolCallState.FAILED:
            return {"error": self.error}
        if self.state == ToolCallState.RESULT:
            return self.result
        raise InvalidToolTransition(f"{self.tool_call_id} has no outcome while {self.state}")


class ToolExecutor:
    """Runs tool invocations concurrently with per-tool timeouts.

    Spawned runs are owned by the executor, not by whoever awaits them:
    if a turn is abandoned its tools still run to completion and their
    outcomes are dropped.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        default_timeout: float = 60.0,
        timeouts: dict[str, float] | None = None,
    ) -> None:
        self.registry = registry
        self.default_timeout = default_timeout
        self.timeouts = timeouts or {}
        self._inflight: set[asyncio.Task] = set()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def timeout_for(self, tool: Tool) -> float:
        if tool.name in self.timeouts:
            return self.timeouts[tool.name]
        if tool.timeout is not None:
            return tool.timeout
        return self.default_timeout

    async def run(
        self,
        invocation: ToolInvocation,
        ctx: ToolContext,
        registry: ToolRegistry | None = None,
    ) -> ToolInvocation:
        """Drive *invocation* to a settled state. Never raises for tool errors."""
        registry = registry if registry is not None else self.registry
        tool = registry.get(invocation.tool_name)
        if tool is None:
            invocation.fail(f"Unknown tool: {invocation.tool_name}")
            logger.warning("Tool call {} requested unknown tool {}", invocation.tool_call_id, invocation.tool_name)
            return invocation

        try:
            args = tool.args_model.model_validate(invocation.args)
        except ValidationError as exc:
            invocation.fail(f"Invalid arguments for {tool.name}: {exc.error_count()} validation error(s): {exc}")
            logger.warning("Tool {} rejected arguments {}", tool.name, invocation.args)
            return invocation

        invocation.start()
        timeout = self.timeout_for(tool)
        logger.info("→ Tool {} ({}) started", tool.name, invocation.tool_call_id)
        try:
            if tool.is_async:
                result = await asyncio.wait_for(tool.handler(args, ctx), timeout)
            else:
                result = await asyncio.wait_for(asyncio.to_thread(tool.handler, args, ctx), timeout)
        except TimeoutError:
            invocation.fail(f"Tool {tool.name} timed out after {timeout:g}s")
            logger.warning("Tool {} ({}) timed out after {}s", tool.name, invocation.tool_call_id, timeout)
        except Exception as exc:
            invocation.fail(f"Error executing tool {tool.name}: {exc}")
            logger.opt(exception=exc).warning("Tool {} ({}) failed", tool.name, invocation.tool_call_id)
        else:
            invocation.succeed(result)
            logger.info(
                "← Tool {} ({}) done in {}ms", tool.name, invocation.tool_call_id, invocation.duration_ms
            )
        return invocation

    def spawn(
        self,
        invocation: ToolInvocation,
        ctx: ToolContext,
        on_settled: Callable[[ToolInvocation], None] | None = None,
        registry: ToolRegistry | None = None,
    ) -> asyncio.Task[ToolInvocation]:
        """Start *invocation* as an independent task."""

        async def _run() -> ToolInvocation:
            settled = await self.run(invocation, ctx, registry)
            if on_settled is not None:
                on_settled(settled)
            return settled

        task = asyncio.get_running_loop().create_task(_run(), name=f"tool:{invocation.tool_name}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for in-flight tool runs, cancelling the rest after *timeout*."""
        if not self._inflight:
            return
        _, pending = await asyncio.wait(list(self._inflight), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
