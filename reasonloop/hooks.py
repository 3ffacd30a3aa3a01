"""Interception points around each tool call.

A before-hook may rewrite the pending tool arguments and the whole message
sequence (system message included). An after-hook sees the tool output, may
rewrite the message sequence and may ask the run to stop once the current tool
turn finishes. Rewrites always replace the full sequence. Hooks may be plain
functions or coroutines; returning ``None`` leaves everything unchanged.
"""

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from reasonloop.llm.base import Message
from reasonloop.state import RunState


@dataclass
class ToolHookContext:
    """What a hook sees about the tool call in progress."""

    tool_name: str
    tool_input: dict[str, Any]
    messages: list[Message]
    state: RunState
    call_id: str = ""
    tool_output: Any = None
    error: str | None = None


@dataclass
class BeforeHookResult:
    messages: list[Message]
    tool_input: dict[str, Any] | None = None


@dataclass
class AfterHookResult:
    messages: list[Message]
    should_stop: bool = False


BeforeToolHook = Callable[
    [ToolHookContext],
    Union[BeforeHookResult, None, Awaitable[Union[BeforeHookResult, None]]],
]
AfterToolHook = Callable[
    [ToolHookContext],
    Union[AfterHookResult, None, Awaitable[Union[AfterHookResult, None]]],
]


async def call_hook(hook: Callable[[ToolHookContext], Any] | None, context: ToolHookContext) -> Any:
    """Invoke a sync or async hook."""
    if hook is None:
        return None
    result = hook(context)
    if inspect.isawaitable(result):
        result = await result
    return result
