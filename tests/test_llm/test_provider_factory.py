import pytest

from reasonloop.agent import Agent
from reasonloop.config import Config, ModelConfig, ProvidersConfig
from reasonloop.exceptions import ConfigurationError, MissingCredentialError, UnsupportedProviderError
from reasonloop.llm import (
    LiteLLMProvider,
    OllamaProvider,
    create_provider,
    get_provider_spec,
    list_providers,
    streaming_enabled,
)


def test_create_provider_supports_ollama():
    provider = create_provider(
        ModelConfig(model="ollama/llama3.2", base_url="http://localhost:11434"),
        config=Config(),
    )
    assert isinstance(provider, OllamaProvider)
    assert provider.model == "llama3.2"
    assert provider.base_url == "http://localhost:11434"


def test_create_provider_ollama_uses_config_base_url():
    cfg = Config(providers=ProvidersConfig(ollama_base_url="http://gpu-box:11434/"))
    provider = create_provider(ModelConfig(model="ollama/qwen3:32b"), config=cfg)
    assert provider.base_url == "http://gpu-box:11434"
    assert provider.model == "qwen3:32b"


def test_create_provider_openai():
    provider = create_provider(ModelConfig(model="openai/gpt-4o-mini"), api_key="sk-test", config=Config())
    assert isinstance(provider, LiteLLMProvider)
    assert provider.provider == "openai"
    assert provider.model == "openai/gpt-4o-mini"
    assert provider.api_key == "sk-test"


def test_create_provider_google_routes_to_gemini():
    provider = create_provider(ModelConfig(model="google/gemini-2.5-flash"), api_key="g", config=Config())
    assert isinstance(provider, LiteLLMProvider)
    assert provider.provider == "gemini"
    assert provider.model == "gemini/gemini-2.5-flash"


def test_create_provider_openrouter_keeps_nested_model_path():
    provider = create_provider(
        ModelConfig(model="openrouter/anthropic/claude-sonnet-4", provider_order=["anthropic"]),
        api_key="or",
        config=Config(),
    )
    assert provider.model == "openrouter/anthropic/claude-sonnet-4"
    assert provider.base_url == "https://openrouter.ai/api/v1"
    assert provider.provider_order == ["anthropic"]


def test_create_provider_gpt5_forces_temperature():
    provider = create_provider(ModelConfig(model="openai/gpt-5-mini", temperature=0.2), api_key="k", config=Config())
    assert provider.temperature == 1.0


def test_unknown_provider_raises():
    with pytest.raises(UnsupportedProviderError) as exc:
        create_provider(ModelConfig(model="acme/thing"), config=Config())
    assert exc.value.provider == "acme"
    assert isinstance(exc.value, ConfigurationError)


def test_provider_registry_lists_known_backends():
    assert list_providers() == ["anthropic", "google", "ollama", "openai", "openrouter"]
    assert get_provider_spec("OpenAI").credential_type.value == "OPENAI_CRED"
    assert get_provider_spec("ollama").credential_type is None


def test_streaming_disabled_for_google_by_default():
    cfg = Config()
    assert streaming_enabled(ModelConfig(model="google/gemini-2.5-flash"), True, cfg) is False
    assert streaming_enabled(ModelConfig(model="google/gemini-2.5-flash", streaming=True), True, cfg) is True
    assert streaming_enabled(ModelConfig(model="openai/gpt-4o"), True, cfg) is True
    assert streaming_enabled(ModelConfig(model="openai/gpt-4o"), False, cfg) is False


def test_choose_credential_requires_matching_type():
    agent = Agent(config=Config())
    model = ModelConfig(model="anthropic/claude-sonnet-4")

    assert agent._choose_credential(model, {"ANTHROPIC_CRED": "sk-ant"}) == "sk-ant"
    with pytest.raises(MissingCredentialError) as exc:
        agent._choose_credential(model, {"OPENAI_CRED": "sk-openai"})
    assert str(exc.value) == "No ANTHROPIC credentials provided"
    assert exc.value.credential_type == "ANTHROPIC_CRED"
    assert agent._choose_credential(ModelConfig(model="ollama/llama3.2"), {}) is None


def test_model_identifier_must_have_provider_prefix():
    agent = Agent(config=Config())
    with pytest.raises(ConfigurationError):
        agent._resolve_provider(ModelConfig(model="gpt-4o"), {"OPENAI_CRED": "k"})


@pytest.mark.asyncio
async def test_test_credential_reports_false_on_missing_credential():
    agent = Agent(config=Config())
    assert await agent.test_credential("openai/gpt-4o-mini", {}) is False
