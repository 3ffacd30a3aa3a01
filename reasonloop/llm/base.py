"""Provider-neutral message types and the LLMProvider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the LLM."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(frozen=True)
class Message:
    """A message in the conversation.

    ``content`` is either plain text or an ordered list of content parts
    (``{"type": "text", ...}`` / ``{"type": "image_url", ...}``).
    """

    role: str  # "system", "user", "assistant", "tool"
    content: str | list[dict[str, Any]]
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    tool_name: str | None = None

    @property
    def text(self) -> str:
        """Text content with image parts dropped."""
        return content_to_text(self.content)


@dataclass
class LLMResponse:
    """Response from the LLM."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)
    finish_reason: str | None = None
    reasoning: str | None = None

    @property
    def truncated(self) -> bool:
        """Whether the provider stopped because of the output token cap."""
        return str(self.finish_reason or "").lower() in {"length", "max_tokens"}


@dataclass
class StreamChunk:
    """One streamed increment: a content delta, or the assembled final response."""

    delta: str = ""
    response: LLMResponse | None = None


@dataclass
class ToolDefinition:
    """Definition of a tool for the LLM."""

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema


def content_to_text(content: Any) -> str:
    """Flatten string or multipart content to plain text."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return str(content)


def empty_usage() -> dict[str, int]:
    """Create an empty usage bucket."""
    return {
        "prompt_tokens": 0,
        "completion_tokens": 0,
        "total_tokens": 0,
    }


def accumulate_usage(target: dict[str, int], usage: dict[str, int] | None) -> None:
    """Add usage values into target totals."""
    if not usage:
        return
    prompt = int(usage.get("prompt_tokens", 0) or 0)
    completion = int(usage.get("completion_tokens", 0) or 0)
    total = int(usage.get("total_tokens", prompt + completion) or 0)
    target["prompt_tokens"] = target.get("prompt_tokens", 0) + prompt
    target["completion_tokens"] = target.get("completion_tokens", 0) + completion
    target["total_tokens"] = target.get("total_tokens", 0) + total


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    provider: str = ""
    model: str = ""
    supports_streaming: bool = True
    supports_images: bool = True

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        pass

    @abstractmethod
    async def complete_streaming(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        pass

    async def close(self) -> None:
        """Release client resources."""
        return None
