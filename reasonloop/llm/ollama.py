"""Ollama provider - direct HTTP calls to Ollama API."""

import json
from typing import Any, AsyncIterator

import httpx

from reasonloop.exceptions import LLMAPIError, LLMError
from reasonloop.llm.base import (
    LLMProvider,
    LLMResponse,
    Message,
    StreamChunk,
    ToolCall,
    ToolDefinition,
    content_to_text,
)
from reasonloop.logging import get_logger

log = get_logger(__name__)


OLLAMA_NATIVE_BASE_URL = "http://127.0.0.1:11434"
_DATA_URI_MARKER = ";base64,"


def _split_images(content: Any) -> tuple[str, list[str]]:
    """Split multipart content into text and raw base64 image payloads."""
    if not isinstance(content, list):
        return content_to_text(content), []
    images: list[str] = []
    for part in content:
        if not isinstance(part, dict) or part.get("type") != "image_url":
            continue
        url = str((part.get("image_url") or {}).get("url", ""))
        if _DATA_URI_MARKER in url:
            images.append(url.split(_DATA_URI_MARKER, 1)[1])
    return content_to_text(content), images


class OllamaProvider(LLMProvider):
    """Direct Ollama API provider."""

    provider = "ollama"

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str = OLLAMA_NATIVE_BASE_URL,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        api_key: str | None = None,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize Ollama provider.

        Args:
            model: Ollama model name (e.g., 'llama3.2', 'qwen3:32b')
            base_url: Ollama API base URL
            temperature: Sampling temperature
            max_tokens: Max tokens to generate
            api_key: Optional API key (Ollama usually doesn't need one locally)
            timeout: Request timeout in seconds
            client: Optional preconfigured HTTP client
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.api_key = api_key

        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
        )

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert messages to Ollama format."""
        result = []

        for msg in messages:
            text, images = _split_images(msg.content)
            entry: dict[str, Any] = {"role": msg.role, "content": text or ""}
            if images:
                entry["images"] = images
            if msg.role == "assistant" and msg.tool_calls:
                entry["tool_calls"] = [
                    {"function": {"name": tc.name, "arguments": tc.arguments}}
                    for tc in msg.tool_calls
                ]
            if msg.role == "tool" and msg.tool_name:
                entry["tool_name"] = msg.tool_name
            result.append(entry)

        return result

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert tools to Ollama format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description or "",
                    "parameters": tool.parameters or {},
                },
            }
            for tool in tools
            if tool.name
        ]

    def _build_body(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None,
        temperature: float | None,
        max_tokens: int | None,
        stream: bool,
    ) -> dict[str, Any]:
        options: dict[str, Any] = {
            "num_ctx": 65536,
            "temperature": self.temperature if temperature is None else temperature,
        }
        if max_tokens or self.max_tokens:
            options["num_predict"] = max_tokens or self.max_tokens

        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "stream": stream,
            "options": options,
        }
        if tools:
            body["tools"] = self._convert_tools(tools)
        return body

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @staticmethod
    def _parse_tool_calls(message: dict[str, Any]) -> list[ToolCall]:
        tool_calls = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function", {})
            arguments = function.get("arguments", {})
            if isinstance(arguments, str):
                try:
                    arguments = json.loads(arguments)
                except json.JSONDecodeError:
                    arguments = {"raw": arguments}
            tool_calls.append(ToolCall(
                id=str(tc.get("id") or ""),
                name=function.get("name", ""),
                arguments=arguments or {},
            ))
        return tool_calls

    @staticmethod
    def _parse_usage(data: dict[str, Any]) -> dict[str, int]:
        prompt = int(data.get("prompt_eval_count", 0) or 0)
        completion = int(data.get("eval_count", 0) or 0)
        return {
            "prompt_tokens": prompt,
            "completion_tokens": completion,
            "total_tokens": prompt + completion,
        }

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion."""
        url = f"{self.base_url}/api/chat"
        body = self._build_body(messages, tools, temperature, max_tokens, stream=False)

        try:
            log.debug("Calling Ollama", model=self.model, url=url, msg_count=len(body["messages"]))

            response = await self.client.post(url, json=body, headers=self._headers())

            log.debug("Ollama response status", status=response.status_code)

            if not response.is_success:
                raise LLMAPIError(
                    f"Ollama API error {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )

            data = response.json()
            message = data.get("message", {}) or {}

            return LLMResponse(
                content=message.get("content", "") or "",
                tool_calls=self._parse_tool_calls(message),
                model=self.model,
                usage=self._parse_usage(data),
                finish_reason=data.get("done_reason"),
                reasoning=message.get("thinking") or None,
            )

        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Ollama HTTP error: {e}")
        except json.JSONDecodeError as e:
            raise LLMError(f"Ollama response decode error: {e}")

    async def complete_streaming(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a completion."""
        url = f"{self.base_url}/api/chat"
        body = self._build_body(messages, tools, temperature, max_tokens, stream=True)

        try:
            async with self.client.stream("POST", url, json=body, headers=self._headers()) as response:
                if not response.is_success:
                    error_text = (await response.aread()).decode("utf-8", errors="replace")
                    raise LLMAPIError(
                        f"Ollama API error {response.status_code}: {error_text}",
                        status_code=response.status_code,
                    )

                accumulated_content = ""
                thinking = ""
                tool_calls: list[ToolCall] = []
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    message = chunk.get("message", {}) or {}
                    if message.get("content"):
                        accumulated_content += message["content"]
                        yield StreamChunk(delta=message["content"])
                    if message.get("thinking"):
                        thinking += message["thinking"]
                    tool_calls.extend(self._parse_tool_calls(message))
                    if chunk.get("done"):
                        yield StreamChunk(response=LLMResponse(
                            content=accumulated_content,
                            tool_calls=tool_calls,
                            model=self.model,
                            usage=self._parse_usage(chunk),
                            finish_reason=chunk.get("done_reason"),
                            reasoning=thinking or None,
                        ))
                        return

                yield StreamChunk(response=LLMResponse(
                    content=accumulated_content,
                    tool_calls=tool_calls,
                    model=self.model,
                    reasoning=thinking or None,
                ))

        except LLMError:
            raise
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Ollama streaming error: {e}")

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
