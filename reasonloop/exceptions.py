"""Custom exceptions for reasonloop."""


class ReasonLoopError(Exception):
    """Base exception for reasonloop."""

    pass


class ConfigurationError(ReasonLoopError):
    """Configuration-related errors, raised before any network call."""

    pass


class UnsupportedProviderError(ConfigurationError):
    """Model identifier names a provider with no registered backend."""

    def __init__(self, provider: str):
        super().__init__(f"Unsupported model provider: {provider}")
        self.provider = provider


class MissingCredentialError(ConfigurationError):
    """No credential supplied for the selected provider."""

    def __init__(self, provider: str, credential_type: str | None = None):
        super().__init__(f"No {provider.upper()} credentials provided")
        self.provider = provider
        self.credential_type = credential_type


class LLMError(ReasonLoopError):
    """LLM-related errors."""

    pass


class LLMAPIError(LLMError):
    """LLM API errors (rate limit, auth, etc.)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ModelCallError(LLMError):
    """Model call failed after every retry attempt."""

    def __init__(self, message: str, attempts: int):
        super().__init__(message)
        self.attempts = attempts


class TruncationError(LLMError):
    """Provider cut the output at the configured token cap."""

    def __init__(self, max_tokens: int | None):
        super().__init__(
            "Response was truncated due to max tokens limit "
            f"(max_tokens={max_tokens}). Please increase max_tokens in model configuration."
        )
        self.max_tokens = max_tokens


class FormatError(ReasonLoopError):
    """Final output could not be parsed in JSON mode."""

    pass


class ImageFetchError(ReasonLoopError):
    """Remote image attachment could not be loaded."""

    def __init__(self, url: str, message: str):
        super().__init__(f"Failed to load image from URL {url}: {message}")
        self.url = url


class ToolError(ReasonLoopError):
    """Tool execution errors."""

    pass


class ToolExecutionError(ToolError):
    """Tool execution failed."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}")
        self.tool_name = tool_name
        self.detail = message


class ToolNotFoundError(ToolError):
    """Tool not found in registry."""

    def __init__(self, tool_name: str):
        super().__init__(f"Tool not found: {tool_name}")
        self.tool_name = tool_name


class ToolResolutionWarning(UserWarning):
    """A tool reference was skipped while resolving tools for a run."""

    def __init__(self, tool_name: str, reason: str):
        super().__init__(f"Tool '{tool_name}' skipped: {reason}")
        self.tool_name = tool_name
        self.reason = reason
