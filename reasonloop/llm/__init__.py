"""Model adapter: provider registry and backend selection by model identifier."""

from dataclasses import dataclass
from typing import Callable

from reasonloop.config import Config, ModelConfig, get_config
from reasonloop.credentials import CredentialType
from reasonloop.exceptions import UnsupportedProviderError
from reasonloop.llm.base import (
    LLMProvider,
    LLMResponse,
    Message,
    StreamChunk,
    ToolCall,
    ToolDefinition,
    accumulate_usage,
    content_to_text,
    empty_usage,
)
from reasonloop.llm.litellm_provider import LiteLLMProvider
from reasonloop.llm.ollama import OLLAMA_NATIVE_BASE_URL, OllamaProvider
from reasonloop.logging import get_logger

log = get_logger(__name__)

ProviderFactory = Callable[[ModelConfig, "str | None", Config], LLMProvider]


@dataclass(frozen=True)
class ProviderSpec:
    """Registry entry describing one model backend."""

    name: str
    factory: ProviderFactory
    credential_type: CredentialType | None
    supports_streaming: bool = True
    supports_images: bool = True


def _litellm_factory(litellm_provider: str) -> ProviderFactory:
    def build(model_config: ModelConfig, api_key: str | None, config: Config) -> LLMProvider:
        base_url = model_config.base_url
        if not base_url and litellm_provider == "openrouter":
            base_url = config.providers.openrouter_base_url
        return LiteLLMProvider(
            provider=litellm_provider,
            model=model_config.bare_model,
            api_key=api_key,
            base_url=base_url or None,
            temperature=model_config.temperature,
            max_tokens=model_config.max_tokens,
            timeout=config.providers.request_timeout,
            provider_order=model_config.provider_order,
        )

    return build


def _ollama_factory(model_config: ModelConfig, api_key: str | None, config: Config) -> LLMProvider:
    return OllamaProvider(
        model=model_config.bare_model,
        base_url=model_config.base_url or config.providers.ollama_base_url or OLLAMA_NATIVE_BASE_URL,
        temperature=model_config.temperature,
        max_tokens=model_config.max_tokens,
        api_key=api_key,
        timeout=config.providers.request_timeout,
    )


_PROVIDERS: dict[str, ProviderSpec] = {}


def register_provider(spec: ProviderSpec) -> None:
    """Register (or replace) a backend under its provider prefix."""
    key = spec.name.strip().lower()
    if not key:
        raise ValueError("Provider spec must have a name")
    _PROVIDERS[key] = spec


def get_provider_spec(provider: str) -> ProviderSpec:
    """Look up a backend by provider prefix.

    Raises:
        UnsupportedProviderError if no backend is registered
    """
    key = str(provider or "").strip().lower()
    spec = _PROVIDERS.get(key)
    if spec is None:
        raise UnsupportedProviderError(key or provider)
    return spec


def list_providers() -> list[str]:
    """Registered provider prefixes."""
    return sorted(_PROVIDERS)


def streaming_enabled(
    model_config: ModelConfig,
    emitter_attached: bool,
    config: Config | None = None,
) -> bool:
    """Decide whether a run streams tokens from its provider.

    Streaming needs an attached emitter and a streaming-capable backend.
    Providers listed in ``providers.disable_streaming`` are forced off unless
    the model config explicitly sets ``streaming=True``.
    """
    if not emitter_attached:
        return False
    spec = get_provider_spec(model_config.provider)
    if not spec.supports_streaming:
        return False
    if model_config.streaming is not None:
        return model_config.streaming
    cfg = config or get_config()
    disabled = {item.strip().lower() for item in cfg.providers.disable_streaming}
    return spec.name not in disabled


def create_provider(
    model_config: ModelConfig,
    api_key: str | None = None,
    config: Config | None = None,
) -> LLMProvider:
    """Create an LLM provider for a ``provider/model-name`` identifier.

    Args:
        model_config: Model configuration (identifier, temperature, token cap)
        api_key: Resolved credential for the provider, if it needs one
        config: Optional config override (defaults to the global config)

    Returns:
        Configured LLMProvider instance

    Raises:
        UnsupportedProviderError if the provider prefix is unknown
    """
    spec = get_provider_spec(model_config.provider)
    cfg = config or get_config()
    provider = spec.factory(model_config, api_key, cfg)
    provider.supports_streaming = spec.supports_streaming
    provider.supports_images = spec.supports_images
    log.debug("Created provider", provider=spec.name, model=model_config.bare_model)
    return provider


register_provider(ProviderSpec("openai", _litellm_factory("openai"), CredentialType.OPENAI_CRED))
register_provider(ProviderSpec("anthropic", _litellm_factory("anthropic"), CredentialType.ANTHROPIC_CRED))
register_provider(ProviderSpec("google", _litellm_factory("gemini"), CredentialType.GOOGLE_GEMINI_CRED))
register_provider(ProviderSpec("openrouter", _litellm_factory("openrouter"), CredentialType.OPENROUTER_CRED))
register_provider(ProviderSpec("ollama", _ollama_factory, None))


__all__ = [
    "LLMProvider",
    "LLMResponse",
    "LiteLLMProvider",
    "Message",
    "OllamaProvider",
    "ProviderSpec",
    "StreamChunk",
    "ToolCall",
    "ToolDefinition",
    "accumulate_usage",
    "content_to_text",
    "create_provider",
    "empty_usage",
    "get_provider_spec",
    "list_providers",
    "register_provider",
    "streaming_enabled",
]
