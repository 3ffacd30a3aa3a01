"""Per-run mutable state owned by one agent run."""

import uuid
from dataclasses import dataclass, field
from typing import Any

from reasonloop.exceptions import ToolResolutionWarning
from reasonloop.llm.base import Message, empty_usage


@dataclass
class ToolCallRecord:
    """One executed tool call as reported in the run result."""

    tool: str
    input: dict[str, Any]
    output: Any

    def to_dict(self) -> dict[str, Any]:
        return {"tool": self.tool, "input": self.input, "output": self.output}


@dataclass
class RunState:
    """State of one run: created at start, discarded at end, never persisted."""

    messages: list[Message] = field(default_factory=list)
    iteration_count: int = 0
    model_turns: int = 0
    tool_call_log: list[ToolCallRecord] = field(default_factory=list)
    should_stop_after_tools: bool = False
    usage: dict[str, int] = field(default_factory=empty_usage)
    tool_warnings: list[ToolResolutionWarning] = field(default_factory=list)
    used_call_ids: set[str] = field(default_factory=set, repr=False, compare=False)
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex, compare=False)
    _call_counter: int = field(default=0, repr=False, compare=False)

    def append(self, message: Message) -> None:
        """Append a message to the conversation."""
        self.messages.append(message)

    def replace_messages(self, messages: list[Message]) -> None:
        """Replace the whole message sequence (hook rewrites)."""
        self.messages = list(messages)

    def latest_assistant(self) -> Message | None:
        """Most recent assistant message, if any."""
        for message in reversed(self.messages):
            if message.role == "assistant":
                return message
        return None

    def claim_call_id(self, call_id: str) -> str:
        """Reserve a tool-call id for this run, replacing it when empty or already used."""
        call_id = call_id.strip()
        if not call_id or call_id in self.used_call_ids:
            call_id = self.next_call_id()
        self.used_call_ids.add(call_id)
        return call_id

    def next_call_id(self) -> str:
        """Run-scoped id for tool calls the provider left unnamed."""
        while True:
            self._call_counter += 1
            call_id = f"call_{self._call_counter}"
            if call_id not in self.used_call_ids:
                return call_id
