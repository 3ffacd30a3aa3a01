"""Tool-call execution helpers for Agent."""

import json
import time
from typing import Any

from reasonloop.exceptions import ToolExecutionError
from reasonloop.hooks import ToolHookContext, call_hook
from reasonloop.llm import Message, ToolCall
from reasonloop.logging import get_logger
from reasonloop.state import RunState, ToolCallRecord
from reasonloop.streaming import StreamingEmitter
from reasonloop.tools import ToolHandle

log = get_logger(__name__)


def serialize_tool_output(output: Any) -> str:
    """Text form of a tool output for the tool-result message."""
    if isinstance(output, str):
        return output
    if output is None:
        return ""
    try:
        return json.dumps(output, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(output)


class AgentToolLoopMixin:
    """Execute the tool calls of one assistant message."""

    async def _handle_tool_calls(
        self,
        tool_calls: tuple[ToolCall, ...],
        handles: dict[str, ToolHandle],
        state: RunState,
        emitter: StreamingEmitter | None,
        context: dict[str, Any],
    ) -> None:
        """Run every requested call in order; one tool message per call.

        A stop request from an after-hook is only acted on once the whole batch
        has finished.
        """
        state.should_stop_after_tools = False
        for tc in tool_calls:
            log.info("Executing tool", tool=tc.name, call_id=tc.id)
            handle = handles.get(tc.name)
            if handle is None:
                log.warning("Tool not found", tool=tc.name, call_id=tc.id)
                state.append(Message(
                    role="tool",
                    content=f"Error: Tool {tc.name} not found",
                    tool_call_id=tc.id,
                    tool_name=tc.name,
                ))
                continue
            await self._execute_tool_call(tc, handle, state, emitter, context)

    async def _execute_tool_call(
        self,
        tc: ToolCall,
        handle: ToolHandle,
        state: RunState,
        emitter: StreamingEmitter | None,
        context: dict[str, Any],
    ) -> None:
        arguments = dict(tc.arguments)

        before = await call_hook(
            self.before_tool_call,
            ToolHookContext(
                tool_name=tc.name,
                tool_input=dict(arguments),
                messages=list(state.messages),
                state=state,
                call_id=tc.id,
            ),
        )
        if before is not None:
            state.replace_messages(before.messages)
            if before.tool_input is not None:
                arguments = dict(before.tool_input)

        if emitter is not None:
            await emitter.tool_start(tc.name, arguments, tc.id)

        started = time.monotonic()
        error: str | None = None
        output: Any = None
        try:
            output = await handle.invoke(arguments, {**context, "call_id": tc.id})
        except ToolExecutionError as e:
            error = e.detail
            log.error("Tool execution failed", tool=tc.name, call_id=tc.id, error=error)
        duration_ms = round((time.monotonic() - started) * 1000, 3)

        content = f"Error: {error}" if error is not None else serialize_tool_output(output)
        state.append(Message(role="tool", content=content, tool_call_id=tc.id, tool_name=tc.name))
        state.tool_call_log.append(ToolCallRecord(
            tool=tc.name,
            input=arguments,
            output=content if error is not None else output,
        ))

        if emitter is not None:
            await emitter.tool_complete(
                tc.name,
                arguments,
                content if error is not None else output,
                tc.id,
                duration_ms,
            )

        if error is not None:
            return

        after = await call_hook(
            self.after_tool_call,
            ToolHookContext(
                tool_name=tc.name,
                tool_input=dict(arguments),
                messages=list(state.messages),
                state=state,
                call_id=tc.id,
                tool_output=output,
            ),
        )
        if after is not None:
            state.replace_messages(after.messages)
            if after.should_stop:
                log.info("After-hook requested stop", tool=tc.name, call_id=tc.id)
                state.should_stop_after_tools = True
