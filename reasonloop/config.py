"""Configuration management for reasonloop."""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.reasonloop/config.yaml").expanduser()
LOCAL_CONFIG_FILENAME = "reasonloop.yaml"

DEFAULT_MODEL = "google/gemini-2.5-flash"
DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant"


class ModelConfig(BaseModel):
    """Model configuration for one agent run."""

    model: str = DEFAULT_MODEL
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=50000, gt=0)
    max_retries: int = Field(default=3, ge=0, le=10)
    provider_order: list[str] | None = None
    json_mode: bool = False
    base_url: str = ""
    streaming: bool | None = None

    @property
    def provider(self) -> str:
        """Provider prefix of the model identifier."""
        provider, _, _ = self.model.partition("/")
        return provider.strip().lower()

    @property
    def bare_model(self) -> str:
        """Model name without the provider prefix."""
        _, _, name = self.model.partition("/")
        return name.strip()


class AgentConfig(BaseModel):
    """Defaults applied to agent runs."""

    name: str = "AI Agent"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_iterations: int = Field(default=10, ge=2)


class RetryConfig(BaseModel):
    """Backoff policy for model calls."""

    base_delay: float = 1.0
    max_delay: float = 32.0
    jitter: float = 0.25


class ProvidersConfig(BaseModel):
    """Provider backend settings."""

    ollama_base_url: str = "http://127.0.0.1:11434"
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    request_timeout: float = 120.0
    disable_streaming: list[str] = Field(default_factory=lambda: ["google"])


class ImagesConfig(BaseModel):
    """Image attachment handling."""

    fetch_timeout: float = 30.0
    default_mime_type: str = "image/png"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for reasonloop."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    images: ImagesConfig = Field(default_factory=ImagesConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="REASONLOOP_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML; env vars fill fields the file leaves unset."""
        return cls.from_yaml(path)

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config | None) -> None:
    """Set the global configuration instance (``None`` forces a reload)."""
    global _config
    _config = config
