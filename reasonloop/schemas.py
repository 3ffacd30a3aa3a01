"""Request and result models for one agent run."""

from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, Field, field_validator

from reasonloop.config import ModelConfig
from reasonloop.credentials import normalize_credentials
from reasonloop.tools.resolver import CustomToolSpec, ToolReference


class Base64Image(BaseModel):
    """Inline image payload."""

    source: Literal["base64"] = "base64"
    data: str = Field(min_length=1)
    mime_type: str = "image/png"
    description: str | None = None


class UrlImage(BaseModel):
    """Image fetched from a URL when the run starts."""

    source: Literal["url"] = "url"
    url: str = Field(min_length=1)
    description: str | None = None


ImageInput = Annotated[Union[Base64Image, UrlImage], Field(discriminator="source")]


class AgentRequest(BaseModel):
    """Everything one run needs.

    ``model`` falls back to the ``model`` section of the loaded config;
    ``system_prompt``, ``name`` and ``max_iterations`` fall back to the
    ``agent`` section when left unset.

    Tool entries given as plain dicts are validated per entry when the run
    resolves its tools, so one malformed entry is skipped with a warning
    instead of rejecting the request.
    """

    message: str = Field(min_length=1)
    images: list[ImageInput] = Field(default_factory=list)
    system_prompt: str | None = None
    name: str | None = None
    model: ModelConfig | None = None
    tools: list[ToolReference | dict[str, Any]] = Field(default_factory=list)
    custom_tools: list[CustomToolSpec | dict[str, Any]] = Field(default_factory=list)
    max_iterations: int | None = Field(default=None, ge=2)
    credentials: dict[str, str] = Field(default_factory=dict)

    @field_validator("message")
    @classmethod
    def _message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value

    @field_validator("tools", mode="before")
    @classmethod
    def _names_to_references(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value

    @field_validator("credentials", mode="before")
    @classmethod
    def _normalize_credentials(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return normalize_credentials(value)
        return value


class AgentResult(BaseModel):
    """Outcome of a run. Failures are reported here, never raised."""

    response: str = ""
    tool_calls: list[dict[str, Any]] = Field(default_factory=list)
    iterations: int = 0
    error: str = ""
    success: bool = True
