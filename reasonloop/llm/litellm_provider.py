"""LiteLLM-backed provider for hosted model APIs (OpenAI, Anthropic, Gemini, OpenRouter)."""

import json
from typing import Any, AsyncIterator

import litellm

from reasonloop.exceptions import LLMAPIError, LLMError
from reasonloop.llm.base import (
    LLMProvider,
    LLMResponse,
    Message,
    StreamChunk,
    ToolCall,
    ToolDefinition,
)
from reasonloop.logging import get_logger

log = get_logger(__name__)


# Provider key -> LiteLLM model prefix.
LITELLM_PREFIXES = {
    "openai": "openai",
    "anthropic": "anthropic",
    "gemini": "gemini",
    "openrouter": "openrouter",
}

_PROVIDER_ALIASES = {
    "chatgpt": "openai",
    "claude": "anthropic",
    "google": "gemini",
    "googleai": "gemini",
}

_GEMINI_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


def normalize_provider_key(provider: str) -> str:
    """Map provider aliases to their LiteLLM provider key."""
    raw = str(provider or "").strip().lower()
    return _PROVIDER_ALIASES.get(raw, raw)


def _is_gpt5_family(model: str) -> bool:
    name = model.rsplit("/", 1)[-1].lower()
    return name.startswith("gpt-5")


def _get(obj: Any, key: str, default: Any = None) -> Any:
    """Read a field from a LiteLLM object or plain dict."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)


class LiteLLMProvider(LLMProvider):
    """Hosted-model provider routed through LiteLLM."""

    def __init__(
        self,
        provider: str,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        timeout: float = 120.0,
        provider_order: list[str] | None = None,
        extra_params: dict[str, Any] | None = None,
    ):
        self.provider = normalize_provider_key(provider)
        if self.provider not in LITELLM_PREFIXES:
            raise ValueError(f"Provider '{provider}' is not routed through LiteLLM")
        prefix = LITELLM_PREFIXES[self.provider]
        self.model = model if model.startswith(f"{prefix}/") else f"{prefix}/{model}"
        self.api_key = api_key
        self.base_url = (base_url or "").rstrip("/") or None
        self.temperature = 1.0 if _is_gpt5_family(self.model) else temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.provider_order = list(provider_order or [])
        self.extra_params = dict(extra_params or {})

    @staticmethod
    def _convert_messages(messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages to OpenAI chat format (LiteLLM translates per provider)."""
        result: list[dict[str, Any]] = []
        for msg in messages:
            entry: dict[str, Any] = {"role": msg.role, "content": msg.content}
            if msg.role == "assistant" and msg.tool_calls:
                entry["content"] = msg.content or None
                entry["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in msg.tool_calls
                ]
            if msg.role == "tool":
                entry["tool_call_id"] = msg.tool_call_id or ""
                if msg.tool_name:
                    entry["name"] = msg.tool_name
            result.append(entry)
        return result

    @staticmethod
    def _convert_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description or "",
                    "parameters": tool.parameters or {"type": "object", "properties": {}},
                },
            }
            for tool in tools
            if tool.name
        ]

    def _request_kwargs(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        stream: bool = False,
    ) -> dict[str, Any]:
        """Build keyword arguments for ``litellm.acompletion``."""
        effective_temperature = self.temperature if temperature is None else temperature
        if _is_gpt5_family(self.model):
            effective_temperature = 1.0

        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "temperature": effective_temperature,
            "max_tokens": max_tokens or self.max_tokens,
            "timeout": self.timeout,
            "stream": stream,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.base_url:
            kwargs["api_base"] = self.base_url
        if tools:
            kwargs["tools"] = self._convert_tools(tools)
        if stream:
            kwargs["stream_options"] = {"include_usage": True}

        if self.provider == "gemini":
            kwargs["safety_settings"] = [
                {"category": category, "threshold": "BLOCK_NONE"}
                for category in _GEMINI_SAFETY_CATEGORIES
            ]
        if self.provider == "openrouter":
            extra_body: dict[str, Any] = {"reasoning": {"effort": "medium", "exclude": False}}
            if self.provider_order:
                extra_body["provider"] = {"order": list(self.provider_order)}
            kwargs["extra_body"] = extra_body

        kwargs.update(self.extra_params)
        return kwargs

    @staticmethod
    def _parse_arguments(raw: Any) -> dict[str, Any]:
        if isinstance(raw, dict):
            return raw
        text = str(raw or "").strip()
        if not text:
            return {}
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            return {"raw": text}
        return parsed if isinstance(parsed, dict) else {"value": parsed}

    @staticmethod
    def _parse_usage(usage: Any) -> dict[str, int]:
        prompt = int(_get(usage, "prompt_tokens", 0) or 0)
        completion = int(_get(usage, "completion_tokens", 0) or 0)
        total = int(_get(usage, "total_tokens", 0) or (prompt + completion))
        return {
            "prompt_tokens": prompt,
            "completion_tokens": completion,
            "total_tokens": total,
        }

    def _parse_response(self, response: Any) -> LLMResponse:
        choices = _get(response, "choices") or []
        if not choices:
            raise LLMError(f"{self.provider} returned no choices")
        choice = choices[0]
        message = _get(choice, "message")

        tool_calls = [
            ToolCall(
                id=str(_get(tc, "id") or ""),
                name=str(_get(_get(tc, "function"), "name") or ""),
                arguments=self._parse_arguments(_get(_get(tc, "function"), "arguments")),
            )
            for tc in (_get(message, "tool_calls") or [])
        ]

        return LLMResponse(
            content=str(_get(message, "content") or ""),
            tool_calls=tool_calls,
            model=str(_get(response, "model") or self.model),
            usage=self._parse_usage(_get(response, "usage")),
            finish_reason=_get(choice, "finish_reason"),
            reasoning=_get(message, "reasoning_content") or None,
        )

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        kwargs = self._request_kwargs(messages, tools, temperature, max_tokens, stream=False)
        log.debug("Calling LiteLLM", model=self.model, msg_count=len(kwargs["messages"]))
        try:
            response = await litellm.acompletion(**kwargs)
        except LLMError:
            raise
        except Exception as e:
            raise LLMAPIError(
                f"{self.provider} API error: {e}",
                status_code=getattr(e, "status_code", None),
            )
        return self._parse_response(response)

    async def complete_streaming(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion, ending with the assembled response."""
        kwargs = self._request_kwargs(messages, tools, temperature, max_tokens, stream=True)
        content = ""
        reasoning = ""
        finish_reason: str | None = None
        usage: dict[str, int] = {}
        # Streamed tool calls arrive as fragments keyed by index.
        partial_calls: dict[int, dict[str, str]] = {}

        try:
            stream = await litellm.acompletion(**kwargs)
            async for chunk in stream:
                if _get(chunk, "usage"):
                    usage = self._parse_usage(_get(chunk, "usage"))
                choices = _get(chunk, "choices") or []
                if not choices:
                    continue
                choice = choices[0]
                delta = _get(choice, "delta")
                finish_reason = _get(choice, "finish_reason") or finish_reason

                text = _get(delta, "content")
                if text:
                    content += text
                    yield StreamChunk(delta=text)
                thought = _get(delta, "reasoning_content")
                if thought:
                    reasoning += thought

                for fragment in _get(delta, "tool_calls") or []:
                    index = int(_get(fragment, "index", 0) or 0)
                    slot = partial_calls.setdefault(index, {"id": "", "name": "", "arguments": ""})
                    if _get(fragment, "id"):
                        slot["id"] = str(_get(fragment, "id"))
                    function = _get(fragment, "function")
                    if _get(function, "name"):
                        slot["name"] += str(_get(function, "name"))
                    if _get(function, "arguments"):
                        slot["arguments"] += str(_get(function, "arguments"))
        except LLMError:
            raise
        except Exception as e:
            raise LLMAPIError(
                f"{self.provider} streaming error: {e}",
                status_code=getattr(e, "status_code", None),
            )

        yield StreamChunk(response=LLMResponse(
            content=content,
            tool_calls=[
                ToolCall(
                    id=slot["id"],
                    name=slot["name"],
                    arguments=self._parse_arguments(slot["arguments"]),
                )
                for _, slot in sorted(partial_calls.items())
            ],
            model=self.model,
            usage=usage,
            finish_reason=finish_reason,
            reasoning=reasoning or None,
        ))
