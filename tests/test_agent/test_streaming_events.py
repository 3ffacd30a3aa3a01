import pytest

from reasonloop.agent import Agent
from reasonloop.config import Config, ModelConfig
from reasonloop.exceptions import LLMAPIError
from reasonloop.llm import LLMProvider, LLMResponse, Message, StreamChunk, ToolCall, ToolDefinition
from reasonloop.schemas import AgentRequest
from reasonloop.streaming import StreamEvent
from reasonloop.tools.registry import ToolRegistry
from reasonloop.tools.resolver import CustomToolSpec


class StreamingProvider(LLMProvider):
    """Streams each scripted response word by word."""

    model = "llama3.2"

    def __init__(self, responses: list[LLMResponse], failures: int = 0):
        self.responses = list(responses)
        self.failures = failures
        self.stream_calls = 0
        self.complete_calls = 0

    def _next(self) -> LLMResponse:
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    async def complete(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        self.complete_calls += 1
        return self._next()

    async def complete_streaming(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        self.stream_calls += 1
        if self.stream_calls <= self.failures:
            raise LLMAPIError("rate limited", status_code=429)
        response = self._next()
        for word in response.content.split(" "):
            if word:
                yield StreamChunk(delta=word + " ")
        yield StreamChunk(response=response)


async def _no_sleep(delay: float) -> None:
    return None


def _add_tool() -> CustomToolSpec:
    return CustomToolSpec(
        name="add",
        description="Add two numbers",
        parameters={"a": {"type": "number"}, "b": {"type": "number"}},
        func=lambda args: args["a"] + args["b"],
    )


def _collecting_agent(provider: LLMProvider, events: list[StreamEvent]) -> Agent:
    async def callback(event: StreamEvent) -> None:
        events.append(event)

    return Agent(
        provider,
        streaming_callback=callback,
        config=Config(),
        registry=ToolRegistry(),
        sleep=_no_sleep,
    )


@pytest.mark.asyncio
async def test_event_order_for_tool_run():
    events: list[StreamEvent] = []
    provider = StreamingProvider([
        LLMResponse(content="", tool_calls=[ToolCall(id="c1", name="add", arguments={"a": 2, "b": 3})]),
        LLMResponse(content="The answer is 5", usage={"total_tokens": 12}),
    ])
    agent = _collecting_agent(provider, events)

    result = await agent.run(AgentRequest(message="2+3?", custom_tools=[_add_tool()]))

    assert result.success is True
    assert [e.type for e in events] == [
        "start",
        "iteration_start",
        "llm_start",
        "llm_complete",
        "tool_start",
        "tool_complete",
        "iteration_complete",
        "iteration_start",
        "llm_start",
        "token",
        "token",
        "token",
        "token",
        "llm_complete",
        "iteration_complete",
        "complete",
    ]
    assert events[0].data["message"] == "2+3?"
    assert events[0].data["max_iterations"] == 10
    assert [e.data["iteration"] for e in events if e.type == "iteration_start"] == [1, 2]

    tool_start = next(e for e in events if e.type == "tool_start")
    tool_complete = next(e for e in events if e.type == "tool_complete")
    assert tool_start.data["call_id"] == tool_complete.data["call_id"] == "c1"
    assert tool_complete.data["output"] == 5
    assert tool_complete.data["duration_ms"] >= 0

    tokens = [e for e in events if e.type == "token"]
    llm_complete = [e for e in events if e.type == "llm_complete"][-1]
    assert "".join(e.data["content"] for e in tokens) == "The answer is 5 "
    assert {e.data["message_id"] for e in tokens} == {llm_complete.data["message_id"]}
    assert llm_complete.data["total_tokens"] == 12

    assert events[6].data == {"iteration": 1, "has_tool_calls": True}
    assert events[-2].data == {"iteration": 2, "has_tool_calls": False}
    assert events[-1].data["result"] == result.model_dump()
    assert events[-1].data["total_duration_ms"] >= 0
    assert provider.complete_calls == 0


@pytest.mark.asyncio
async def test_think_event_reports_reasoning():
    events: list[StreamEvent] = []
    provider = StreamingProvider([LLMResponse(content="Yes", reasoning="Consider the question.")])

    await _collecting_agent(provider, events).run(AgentRequest(message="Is it?"))

    types = [e.type for e in events]
    assert types.index("token") < types.index("think") < types.index("llm_complete")
    think = next(e for e in events if e.type == "think")
    assert think.data["content"] == "Consider the question."


@pytest.mark.asyncio
async def test_retry_errors_are_recoverable_and_complete_is_last():
    events: list[StreamEvent] = []
    provider = StreamingProvider([LLMResponse(content="ok")], failures=2)

    result = await _collecting_agent(provider, events).run(
        AgentRequest(message="hi", model={"max_retries": 3})
    )

    assert result.success is True
    retry_events = [e for e in events if e.type == "error"]
    assert len(retry_events) == 2
    assert all(e.data["recoverable"] is True for e in retry_events)
    assert retry_events[0].data["error"].startswith("Retry attempt 1/3")
    assert events[-1].type == "complete"
    assert sum(1 for e in events if e.type == "complete") == 1


@pytest.mark.asyncio
async def test_failed_run_ends_with_single_error_event():
    events: list[StreamEvent] = []
    provider = StreamingProvider([LLMResponse(content="never")], failures=99)

    result = await _collecting_agent(provider, events).run(
        AgentRequest(message="hi", model={"max_retries": 1})
    )

    assert result.success is False
    assert events[-1].type == "error"
    assert events[-1].data == {"error": result.error, "recoverable": True}
    assert not any(e.type == "complete" for e in events)
    retry_events = [e for e in events[:-1] if e.type == "error"]
    assert [e.data["recoverable"] for e in retry_events] == [True, False]


@pytest.mark.asyncio
async def test_configuration_error_emits_only_terminal_error():
    events: list[StreamEvent] = []

    def callback(event: StreamEvent) -> None:
        events.append(event)

    agent = Agent(streaming_callback=callback, config=Config(), registry=ToolRegistry())
    result = await agent.run(AgentRequest(message="hi", model={"model": "anthropic/claude-sonnet-4"}))

    assert result.success is False
    assert [e.type for e in events] == ["start", "error"]
    assert events[-1].data["error"] == "No ANTHROPIC credentials provided"


@pytest.mark.asyncio
async def test_streaming_can_be_disabled_per_model():
    events: list[StreamEvent] = []
    provider = StreamingProvider([LLMResponse(content="plain answer")])

    result = await _collecting_agent(provider, events).run(
        AgentRequest(message="hi", model={"streaming": False})
    )

    assert result.response == "plain answer"
    assert provider.complete_calls == 1
    assert provider.stream_calls == 0
    assert not any(e.type == "token" for e in events)
    assert events[-1].type == "complete"


@pytest.mark.asyncio
async def test_request_without_model_uses_config_model():
    events: list[StreamEvent] = []
    provider = StreamingProvider([LLMResponse(content="hi")])

    async def callback(event: StreamEvent) -> None:
        events.append(event)

    config = Config(model=ModelConfig(model="ollama/qwen2.5", temperature=0.3))
    agent = Agent(provider, streaming_callback=callback, config=config, registry=ToolRegistry())
    result = await agent.run(AgentRequest(message="hello"))

    assert result.success
    llm_start = next(e for e in events if e.type == "llm_start")
    assert llm_start.data["model"] == "ollama/qwen2.5"
    assert llm_start.data["temperature"] == 0.3


class MidStreamFailureProvider(StreamingProvider):
    """Emits part of the answer, then fails the first attempt."""

    async def complete_streaming(
        self,
        messages: list[Message],
        tools: list[ToolDefinition] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        self.stream_calls += 1
        if self.stream_calls == 1:
            yield StreamChunk(delta="Hel")
            raise LLMAPIError("connection reset", status_code=503)
        yield StreamChunk(delta="Hello")
        yield StreamChunk(response=LLMResponse(content="Hello"))


@pytest.mark.asyncio
async def test_retried_stream_uses_new_message_id():
    events: list[StreamEvent] = []
    provider = MidStreamFailureProvider([LLMResponse(content="Hello")])

    result = await _collecting_agent(provider, events).run(AgentRequest(message="hi"))

    assert result.success is True
    tokens = [e for e in events if e.type == "token"]
    assert [t.data["content"] for t in tokens] == ["Hel", "Hello"]
    assert tokens[0].data["message_id"] != tokens[1].data["message_id"]
    llm_complete = next(e for e in events if e.type == "llm_complete")
    assert llm_complete.data["message_id"] == tokens[1].data["message_id"]
