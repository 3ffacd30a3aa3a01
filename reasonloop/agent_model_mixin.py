"""Model selection and model-turn helpers for Agent."""

from typing import Any

from reasonloop.config import ModelConfig
from reasonloop.exceptions import ConfigurationError, MissingCredentialError
from reasonloop.llm import (
    LLMProvider,
    LLMResponse,
    Message,
    ToolCall,
    ToolDefinition,
    accumulate_usage,
    create_provider,
    get_provider_spec,
    streaming_enabled,
)
from reasonloop.llm.retry import RetryController
from reasonloop.logging import get_logger
from reasonloop.response_formatter import extract_thinking
from reasonloop.state import RunState
from reasonloop.streaming import StreamingEmitter

log = get_logger(__name__)


class AgentModelMixin:
    """Provider selection, credential choice and one model turn."""

    @staticmethod
    def _validate_model_identifier(model_config: ModelConfig) -> None:
        provider, sep, name = model_config.model.partition("/")
        if not sep or not provider.strip() or not name.strip():
            raise ConfigurationError(
                f"Model identifier must look like 'provider/model-name', got {model_config.model!r}"
            )

    def _choose_credential(self, model_config: ModelConfig, credentials: dict[str, str]) -> str | None:
        """Pick the provider credential from the run's mapping.

        Raises:
            UnsupportedProviderError if the provider prefix is unknown
            MissingCredentialError if the provider needs a credential and none is present
        """
        spec = get_provider_spec(model_config.provider)
        if spec.credential_type is None:
            return None
        value = credentials.get(spec.credential_type.value, "")
        if not value:
            raise MissingCredentialError(model_config.provider, spec.credential_type.value)
        return value

    def _resolve_provider(self, model_config: ModelConfig, credentials: dict[str, str]) -> LLMProvider:
        """Return the provider for this run (the override, when one was given)."""
        if self._provider_override is not None:
            return self._provider_override
        self._validate_model_identifier(model_config)
        api_key = self._choose_credential(model_config, credentials)
        return create_provider(model_config, api_key=api_key, config=self.config)

    def _use_streaming(
        self,
        provider: LLMProvider,
        model_config: ModelConfig,
        emitter: StreamingEmitter | None,
    ) -> bool:
        if emitter is None or not provider.supports_streaming:
            return False
        if self._provider_override is not None:
            if model_config.streaming is not None:
                return model_config.streaming
            return True
        return streaming_enabled(model_config, True, self.config)

    async def test_credential(
        self,
        model: ModelConfig | dict[str, Any] | str,
        credentials: dict[str, str] | None = None,
    ) -> bool:
        """Send one short message to check that a credential works.

        Returns True when the model answered with any content, False otherwise.
        """
        if isinstance(model, str):
            model_config = ModelConfig(model=model)
        elif isinstance(model, dict):
            model_config = ModelConfig.model_validate(model)
        else:
            model_config = model
        provider: LLMProvider | None = None
        try:
            provider = self._resolve_provider(model_config, dict(credentials or {}))
            response = await provider.complete(
                [Message(role="user", content="Hello, how are you?")],
                temperature=model_config.temperature,
                max_tokens=model_config.max_tokens,
            )
        except Exception as e:
            log.warning("Credential test failed", model=model_config.model, error=str(e))
            return False
        finally:
            if provider is not None and provider is not self._provider_override:
                await provider.close()
        return bool((response.content or "").strip())

    @staticmethod
    def _assign_call_ids(tool_calls: list[ToolCall], state: RunState) -> tuple[ToolCall, ...]:
        """Give every tool call a run-unique id, keeping provider ids when usable."""
        assigned: list[ToolCall] = []
        for call in tool_calls:
            call_id = state.claim_call_id(str(call.id or ""))
            arguments = call.arguments if isinstance(call.arguments, dict) else {}
            assigned.append(ToolCall(id=call_id, name=call.name, arguments=arguments))
        return tuple(assigned)

    async def _stream_completion(
        self,
        provider: LLMProvider,
        messages: list[Message],
        tools: list[ToolDefinition] | None,
        model_config: ModelConfig,
        emitter: StreamingEmitter,
        message_id: str,
    ) -> LLMResponse:
        content = ""
        final: LLMResponse | None = None
        async for chunk in provider.complete_streaming(
            messages=messages,
            tools=tools,
            temperature=model_config.temperature,
            max_tokens=model_config.max_tokens,
        ):
            if chunk.delta:
                content += chunk.delta
                await emitter.token(chunk.delta, message_id)
            if chunk.response is not None:
                final = chunk.response
        if final is None:
            final = LLMResponse(content=content, model=provider.model)
        return final

    async def _model_turn(
        self,
        provider: LLMProvider,
        state: RunState,
        tools: list[ToolDefinition],
        model_config: ModelConfig,
        retry: RetryController,
        emitter: StreamingEmitter | None,
        use_streaming: bool,
    ) -> LLMResponse:
        """Call the model once (with retries) on the current message sequence."""
        turn = state.model_turns
        message_id = ""
        if emitter is not None:
            await emitter.iteration_start(turn)
            await emitter.llm_start(model_config.model, model_config.temperature)

        messages = list(state.messages)
        tool_defs = tools or None

        async def call() -> LLMResponse:
            # One message id per attempt; a failed stream keeps its own id.
            nonlocal message_id
            message_id = StreamingEmitter.new_message_id(turn)
            if use_streaming and emitter is not None:
                return await self._stream_completion(
                    provider, messages, tool_defs, model_config, emitter, message_id
                )
            return await provider.complete(
                messages=messages,
                tools=tool_defs,
                temperature=model_config.temperature,
                max_tokens=model_config.max_tokens,
            )

        log.info(
            "Calling model",
            model=model_config.model,
            turn=turn,
            streaming=use_streaming,
            tools=len(tools),
        )
        response = await retry.run(call, label=f"model_turn:{turn}")
        accumulate_usage(state.usage, response.usage)

        if emitter is not None:
            thinking = extract_thinking(response)
            if thinking:
                await emitter.think(thinking, message_id)
            total_tokens = (response.usage or {}).get("total_tokens")
            await emitter.llm_complete(message_id, total_tokens)
        return response
