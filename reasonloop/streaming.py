"""Ordered lifecycle events delivered to a run's streaming callback."""

import inspect
import time
import uuid
from datetime import UTC, datetime
from typing import Any, Awaitable, Callable, Literal, Union

from pydantic import BaseModel, Field

from reasonloop.logging import get_logger

log = get_logger(__name__)

StreamEventType = Literal[
    "start",
    "llm_start",
    "token",
    "think",
    "llm_complete",
    "tool_start",
    "tool_complete",
    "iteration_start",
    "iteration_complete",
    "error",
    "complete",
]


class StreamEvent(BaseModel):
    """One lifecycle event."""

    type: StreamEventType
    data: dict[str, Any] = Field(default_factory=dict)


StreamingCallback = Callable[[StreamEvent], Union[None, Awaitable[None]]]


class StreamingEmitter:
    """Await each event on the callback before the run proceeds.

    Delivery is one event at a time in emission order; a slow consumer slows
    the run. Exactly one terminal event (``complete`` or final ``error``) is
    sent per run.
    """

    def __init__(self, callback: StreamingCallback):
        self._callback = callback
        self.terminated = False
        self._started_at = time.monotonic()

    async def emit(self, event_type: StreamEventType, **data: Any) -> None:
        if self.terminated:
            log.debug("Dropping event after terminal event", type=event_type)
            return
        event = StreamEvent(type=event_type, data=data)
        result = self._callback(event)
        if inspect.isawaitable(result):
            await result

    @staticmethod
    def new_message_id(iteration: int) -> str:
        """Run-scoped id shared by token/think/llm_complete of one model turn."""
        return f"msg-{iteration}-{uuid.uuid4().hex[:8]}"

    async def start(self, message: str, max_iterations: int) -> None:
        self._started_at = time.monotonic()
        await self.emit(
            "start",
            message=message,
            max_iterations=max_iterations,
            timestamp=datetime.now(UTC).isoformat(),
        )

    async def llm_start(self, model: str, temperature: float) -> None:
        await self.emit("llm_start", model=model, temperature=temperature)

    async def token(self, content: str, message_id: str) -> None:
        await self.emit("token", content=content, message_id=message_id)

    async def think(self, content: str, message_id: str) -> None:
        await self.emit("think", content=content, message_id=message_id)

    async def llm_complete(self, message_id: str, total_tokens: int | None) -> None:
        await self.emit("llm_complete", message_id=message_id, total_tokens=total_tokens)

    async def tool_start(self, tool: str, tool_input: dict[str, Any], call_id: str) -> None:
        await self.emit("tool_start", tool=tool, input=tool_input, call_id=call_id)

    async def tool_complete(
        self,
        tool: str,
        tool_input: dict[str, Any],
        output: Any,
        call_id: str,
        duration_ms: float,
    ) -> None:
        await self.emit(
            "tool_complete",
            tool=tool,
            input=tool_input,
            output=output,
            call_id=call_id,
            duration_ms=duration_ms,
        )

    async def iteration_start(self, iteration: int) -> None:
        await self.emit("iteration_start", iteration=iteration)

    async def iteration_complete(self, iteration: int, has_tool_calls: bool) -> None:
        await self.emit("iteration_complete", iteration=iteration, has_tool_calls=has_tool_calls)

    async def retry(self, attempt: int, max_retries: int, error: Exception, retries_left: int) -> None:
        """Non-terminal progress notification for a failed model call attempt."""
        await self.emit(
            "error",
            error=f"Retry attempt {attempt}/{max_retries}: {error}",
            recoverable=retries_left > 0,
        )

    async def error(self, error: str) -> None:
        await self.emit("error", error=error, recoverable=True)
        self.terminated = True

    async def complete(self, result: dict[str, Any]) -> None:
        total_duration_ms = round((time.monotonic() - self._started_at) * 1000, 3)
        await self.emit("complete", result=result, total_duration_ms=total_duration_ms)
        self.terminated = True
