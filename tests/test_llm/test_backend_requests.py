import json

import httpx
import pytest

import reasonloop.llm.litellm_provider as litellm_module
from reasonloop.exceptions import LLMAPIError
from reasonloop.llm import LiteLLMProvider, Message, OllamaProvider, ToolCall, ToolDefinition


ADD_TOOL = ToolDefinition(
    name="add",
    description="Add numbers",
    parameters={"type": "object", "properties": {"a": {"type": "number"}}},
)


def test_gemini_request_disables_safety_filters():
    provider = LiteLLMProvider(provider="gemini", model="gemini-2.5-flash", api_key="g")
    kwargs = provider._request_kwargs([Message(role="user", content="hi")])

    assert kwargs["model"] == "gemini/gemini-2.5-flash"
    assert kwargs["api_key"] == "g"
    assert {item["threshold"] for item in kwargs["safety_settings"]} == {"BLOCK_NONE"}
    assert "extra_body" not in kwargs


def test_openrouter_request_sets_reasoning_and_provider_order():
    provider = LiteLLMProvider(
        provider="openrouter",
        model="openai/gpt-4o",
        provider_order=["azure", "openai"],
    )
    kwargs = provider._request_kwargs([Message(role="user", content="hi")], tools=[ADD_TOOL], stream=True)

    assert kwargs["extra_body"]["reasoning"]["effort"] == "medium"
    assert kwargs["extra_body"]["provider"] == {"order": ["azure", "openai"]}
    assert kwargs["stream_options"] == {"include_usage": True}
    assert kwargs["tools"][0]["function"]["name"] == "add"


def test_assistant_tool_calls_and_tool_messages_are_converted():
    converted = LiteLLMProvider._convert_messages([
        Message(role="assistant", content="", tool_calls=(ToolCall(id="c1", name="add", arguments={"a": 1}),)),
        Message(role="tool", content="1", tool_call_id="c1", tool_name="add"),
    ])

    assert converted[0]["content"] is None
    assert converted[0]["tool_calls"][0]["function"]["arguments"] == json.dumps({"a": 1})
    assert converted[1] == {"role": "tool", "content": "1", "tool_call_id": "c1", "name": "add"}


@pytest.mark.asyncio
async def test_litellm_complete_parses_dict_response(monkeypatch):
    captured: dict = {}

    async def fake_acompletion(**kwargs):
        captured.update(kwargs)
        return {
            "model": "openai/gpt-4o-mini",
            "choices": [{
                "finish_reason": "tool_calls",
                "message": {
                    "content": None,
                    "tool_calls": [{
                        "id": "call_9",
                        "function": {"name": "add", "arguments": '{"a": 2}'},
                    }],
                },
            }],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5},
        }

    monkeypatch.setattr(litellm_module.litellm, "acompletion", fake_acompletion)
    provider = LiteLLMProvider(provider="openai", model="gpt-4o-mini", api_key="sk")

    response = await provider.complete([Message(role="user", content="add")], tools=[ADD_TOOL], max_tokens=99)

    assert captured["max_tokens"] == 99
    assert response.content == ""
    assert response.tool_calls == [ToolCall(id="call_9", name="add", arguments={"a": 2})]
    assert response.usage == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}
    assert response.finish_reason == "tool_calls"


@pytest.mark.asyncio
async def test_litellm_errors_are_wrapped(monkeypatch):
    class RateLimited(Exception):
        status_code = 429

    async def fake_acompletion(**kwargs):
        raise RateLimited("slow down")

    monkeypatch.setattr(litellm_module.litellm, "acompletion", fake_acompletion)
    provider = LiteLLMProvider(provider="anthropic", model="claude-sonnet-4", api_key="k")

    with pytest.raises(LLMAPIError) as exc:
        await provider.complete([Message(role="user", content="hi")])
    assert exc.value.status_code == 429


@pytest.mark.asyncio
async def test_litellm_streaming_assembles_tool_call_fragments(monkeypatch):
    chunks = [
        {"choices": [{"delta": {"content": "Let me "}}]},
        {"choices": [{"delta": {"content": "add.", "tool_calls": [
            {"index": 0, "id": "t1", "function": {"name": "add", "arguments": '{"a"'}},
        ]}}]},
        {"choices": [{"delta": {"tool_calls": [
            {"index": 0, "function": {"arguments": ": 3}"}},
        ]}, "finish_reason": "tool_calls"}]},
        {"choices": [], "usage": {"prompt_tokens": 4, "completion_tokens": 6, "total_tokens": 10}},
    ]

    async def stream():
        for chunk in chunks:
            yield chunk

    async def fake_acompletion(**kwargs):
        assert kwargs["stream"] is True
        return stream()

    monkeypatch.setattr(litellm_module.litellm, "acompletion", fake_acompletion)
    provider = LiteLLMProvider(provider="openai", model="gpt-4o", api_key="k")

    received = [chunk async for chunk in provider.complete_streaming([Message(role="user", content="3")])]

    assert [c.delta for c in received if c.delta] == ["Let me ", "add."]
    final = received[-1].response
    assert final.content == "Let me add."
    assert final.tool_calls == [ToolCall(id="t1", name="add", arguments={"a": 3})]
    assert final.usage["total_tokens"] == 10
    assert final.finish_reason == "tool_calls"


@pytest.mark.asyncio
async def test_ollama_complete_sends_images_and_parses_reply():
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "message": {
                "content": "",
                "thinking": "hmm",
                "tool_calls": [{"function": {"name": "add", "arguments": {"a": 1}}}],
            },
            "done": True,
            "done_reason": "stop",
            "prompt_eval_count": 7,
            "eval_count": 3,
        })

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = OllamaProvider(model="llava", base_url="http://ollama.test", client=client)
    user = Message(role="user", content=[
        {"type": "text", "text": "what is this"},
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,QUJD"}},
    ])

    response = await provider.complete([user], tools=[ADD_TOOL])

    assert seen["body"]["messages"][0] == {"role": "user", "content": "what is this", "images": ["QUJD"]}
    assert seen["body"]["tools"][0]["function"]["name"] == "add"
    assert response.tool_calls == [ToolCall(id="", name="add", arguments={"a": 1})]
    assert response.reasoning == "hmm"
    assert response.usage["total_tokens"] == 10


@pytest.mark.asyncio
async def test_ollama_error_status_raises_api_error():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")))
    provider = OllamaProvider(model="llama3.2", base_url="http://ollama.test", client=client)

    with pytest.raises(LLMAPIError) as exc:
        await provider.complete([Message(role="user", content="hi")])
    assert exc.value.status_code == 500
