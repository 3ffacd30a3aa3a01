"""Agent orchestration for reasonloop."""

import asyncio
from typing import Any, Awaitable, Callable, Mapping

import httpx
from pydantic import ValidationError

from reasonloop.agent_context_mixin import AgentContextMixin
from reasonloop.agent_model_mixin import AgentModelMixin
from reasonloop.agent_tool_loop_mixin import AgentToolLoopMixin
from reasonloop.config import Config, ModelConfig, get_config
from reasonloop.exceptions import ConfigurationError, ReasonLoopError, ToolResolutionWarning
from reasonloop.hooks import AfterToolHook, BeforeToolHook
from reasonloop.llm import LLMProvider, Message
from reasonloop.llm.retry import RetryController
from reasonloop.logging import get_logger, run_context
from reasonloop.response_formatter import check_truncation, format_final_response
from reasonloop.schemas import AgentRequest, AgentResult
from reasonloop.state import RunState
from reasonloop.streaming import StreamingCallback, StreamingEmitter
from reasonloop.tools import ToolRegistry, ToolResolver, get_tool_registry

log = get_logger(__name__)


class Agent(AgentModelMixin, AgentContextMixin, AgentToolLoopMixin):
    """Runs the model/tool conversation loop for one request at a time."""

    def __init__(
        self,
        provider: LLMProvider | None = None,
        *,
        streaming_callback: StreamingCallback | None = None,
        before_tool_call: BeforeToolHook | None = None,
        after_tool_call: AfterToolHook | None = None,
        registry: ToolRegistry | None = None,
        config: Config | None = None,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the agent.

        Args:
            provider: Optional LLM provider override (skips provider selection)
            streaming_callback: Receives lifecycle events, awaited in order
            before_tool_call: Hook run before each tool invocation
            after_tool_call: Hook run after each successful tool invocation
            registry: Tool registry (defaults to the global one)
            config: Config override (defaults to the global config)
            http_client: Client used to fetch URL image attachments
            sleep: Backoff sleep, replaceable in tests
        """
        self.streaming_callback = streaming_callback
        self.before_tool_call = before_tool_call
        self.after_tool_call = after_tool_call
        self.tools = registry or get_tool_registry()
        self.config = config or get_config()
        self._provider_override = provider
        self._http_client = http_client
        self._sleep = sleep
        # Most recent run only; concurrent runs each keep their own RunState.
        self.last_state: RunState | None = None

    @property
    def last_warnings(self) -> list[ToolResolutionWarning]:
        """Tool resolution warnings of the most recent run."""
        return list(self.last_state.tool_warnings) if self.last_state is not None else []

    def _coerce_request(self, request: AgentRequest | Mapping[str, Any]) -> AgentRequest:
        if isinstance(request, AgentRequest):
            return request
        try:
            return AgentRequest.model_validate(dict(request))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid agent request: {e}") from e

    @staticmethod
    def _failure_result(state: RunState, message: str) -> AgentResult:
        latest = state.latest_assistant()
        text = latest.text if latest is not None else ""
        return AgentResult(
            response=text or f"Error: {message}",
            tool_calls=[record.to_dict() for record in state.tool_call_log],
            iterations=state.iteration_count,
            error=message,
            success=False,
        )

    async def run(self, request: AgentRequest | Mapping[str, Any]) -> AgentResult:
        """Run the conversation loop to completion.

        Never raises: every failure is reported on the returned AgentResult and,
        when streaming, as the terminal ``error`` event.
        """
        state = RunState()
        self.last_state = state
        emitter = StreamingEmitter(self.streaming_callback) if self.streaming_callback else None

        with run_context(run_id=state.run_id):
            try:
                req = self._coerce_request(request)
                max_iterations = req.max_iterations or self.config.agent.max_iterations
                if emitter is not None:
                    await emitter.start(req.message, max_iterations)
                result = await self._run_loop(req, state, emitter, max_iterations)
            except Exception as e:
                error = str(e) or e.__class__.__name__
                if not isinstance(e, ReasonLoopError):
                    log.error("Unexpected error during agent run", error=error, exc_type=e.__class__.__name__)
                log.warning("Agent run failed", error=error, iterations=state.iteration_count)
                result = self._failure_result(state, error)

            await self._emit_terminal(emitter, result)
            log.info(
                "Agent run finished",
                success=result.success,
                iterations=result.iterations,
                tool_calls=len(result.tool_calls),
                total_tokens=state.usage.get("total_tokens", 0),
            )
        return result

    async def _emit_terminal(self, emitter: StreamingEmitter | None, result: AgentResult) -> None:
        if emitter is None or emitter.terminated:
            return
        try:
            if result.success:
                await emitter.complete(result.model_dump())
            else:
                await emitter.error(result.error)
        except Exception as e:
            log.error("Streaming callback failed on terminal event", error=str(e))

    async def _run_loop(
        self,
        req: AgentRequest,
        state: RunState,
        emitter: StreamingEmitter | None,
        max_iterations: int,
    ) -> AgentResult:
        model_config = req.model or self.config.model
        provider = self._resolve_provider(model_config, req.credentials)
        try:
            return await self._converse(req, model_config, provider, state, emitter, max_iterations)
        finally:
            if provider is not self._provider_override:
                await provider.close()

    async def _converse(
        self,
        req: AgentRequest,
        model_config: ModelConfig,
        provider: LLMProvider,
        state: RunState,
        emitter: StreamingEmitter | None,
        max_iterations: int,
    ) -> AgentResult:
        resolver = ToolResolver(self.tools)
        handles = resolver.resolve(req.tools, req.custom_tools, req.credentials)
        state.tool_warnings = list(resolver.warnings)
        handles_by_name = {handle.name: handle for handle in handles}
        definitions = [handle.definition() for handle in handles]

        system_prompt = req.system_prompt or self.config.agent.system_prompt
        agent_name = req.name or self.config.agent.name
        state.replace_messages(await self._build_initial_messages(req, provider, system_prompt))

        use_streaming = self._use_streaming(provider, model_config, emitter)
        retry = RetryController(
            max_retries=model_config.max_retries,
            base_delay=self.config.retry.base_delay,
            max_delay=self.config.retry.max_delay,
            jitter=self.config.retry.jitter,
            sleep=self._sleep,
            on_retry=emitter.retry if emitter is not None else None,
        )
        tool_context = {"run_id": state.run_id, "agent_name": agent_name}

        log.info(
            "Starting agent run",
            agent=agent_name,
            model=model_config.model,
            tools=[handle.name for handle in handles],
            max_iterations=max_iterations,
            streaming=use_streaming,
        )

        while state.iteration_count < max_iterations:
            # Model turn
            state.iteration_count += 1
            state.model_turns += 1
            response = await self._model_turn(
                provider, state, definitions, model_config, retry, emitter, use_streaming
            )
            check_truncation(response, model_config.max_tokens)

            tool_calls = self._assign_call_ids(response.tool_calls, state)
            state.append(Message(role="assistant", content=response.content or "", tool_calls=tool_calls))
            wants_tools = bool(tool_calls) and bool(handles)

            if not wants_tools:
                if emitter is not None:
                    await emitter.iteration_complete(state.model_turns, False)
                break
            if state.iteration_count >= max_iterations:
                log.info("Iteration budget exhausted", max_iterations=max_iterations)
                if emitter is not None:
                    await emitter.iteration_complete(state.model_turns, True)
                break

            # Tool turn
            state.iteration_count += 1
            await self._handle_tool_calls(tool_calls, handles_by_name, state, emitter, tool_context)
            if emitter is not None:
                await emitter.iteration_complete(state.model_turns, True)
            if state.should_stop_after_tools:
                log.info("Stopping after tool turn", iterations=state.iteration_count)
                break

        return self._final_result(state, model_config.model, model_config.json_mode)

    @staticmethod
    def _final_result(state: RunState, model: str, json_mode: bool) -> AgentResult:
        latest = state.latest_assistant()
        formatted = format_final_response(latest.content if latest else "", model, json_mode)
        return AgentResult(
            response=formatted.response,
            tool_calls=[record.to_dict() for record in state.tool_call_log],
            iterations=state.iteration_count,
            error=formatted.error,
            success=formatted.success,
        )


async def run_agent(
    request: AgentRequest | Mapping[str, Any] | None = None,
    *,
    streaming_callback: StreamingCallback | None = None,
    before_tool_call: BeforeToolHook | None = None,
    after_tool_call: AfterToolHook | None = None,
    provider: LLMProvider | None = None,
    registry: ToolRegistry | None = None,
    config: Config | None = None,
    **fields: Any,
) -> AgentResult:
    """One-shot helper: build an Agent and run a single request.

    Request fields may be passed as keyword arguments instead of a request
    object, e.g. ``await run_agent(message="hi", model={"model": "openai/gpt-4o"})``.
    """
    if request is None:
        request = fields
    elif fields:
        base = request.model_dump() if isinstance(request, AgentRequest) else dict(request)
        base.update(fields)
        request = base
    agent = Agent(
        provider,
        streaming_callback=streaming_callback,
        before_tool_call=before_tool_call,
        after_tool_call=after_tool_call,
        registry=registry,
        config=config,
    )
    return await agent.run(request)
