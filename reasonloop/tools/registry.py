"""Tool registry and base tool class."""

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, model_validator

from reasonloop.exceptions import ToolExecutionError, ToolNotFoundError
from reasonloop.logging import get_logger

log = get_logger(__name__)


def _normalize_tool_name(value: str) -> str:
    """Normalize tool names for lookups."""
    return str(value or "").strip().lower()


class ToolResult(BaseModel):
    """Explicit success/failure envelope a tool may return instead of a bare value."""

    success: bool = True
    content: Any = ""
    error: str | None = None

    @model_validator(mode="after")
    def _normalize_failure_error(self) -> "ToolResult":
        """Ensure failed results always provide an error message."""
        if not self.success and not (self.error or "").strip():
            fallback = str(self.content or "").strip()
            self.error = fallback or "Tool execution failed"
        return self


class Tool(ABC):
    """Base class for registered tools.

    Subclasses declare ``name``, ``description``, a JSON-schema ``parameters``
    object and the credential types they need, and implement ``invoke``.
    """

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {"type": "object", "properties": {}, "required": []}
    credential_types: tuple[str, ...] = ()

    @abstractmethod
    async def invoke(
        self,
        arguments: dict[str, Any],
        credentials: dict[str, str],
        config: dict[str, Any],
        context: dict[str, Any] | None = None,
    ) -> Any:
        """Execute the tool.

        Args:
            arguments: Arguments produced by the model
            credentials: Credential type -> secret for this tool
            config: Per-tool configuration from the tool reference
            context: Run context (run id, agent name)

        Returns:
            Tool output (any JSON-serializable value, or a ToolResult)
        """
        pass

    def get_definition(self) -> dict[str, Any]:
        """Get the tool definition for LLM.

        Returns:
            OpenAI function-style definition
        """
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    def validate_arguments(self, arguments: dict[str, Any]) -> None:
        """Validate tool arguments against schema.

        Raises:
            ToolExecutionError if a required argument is missing
        """
        required = (self.parameters or {}).get("required", [])
        for field in required:
            if field not in arguments:
                raise ToolExecutionError(
                    self.name,
                    f"Missing required argument: {field}",
                )


class ToolRegistry:
    """Registry of tools available to agent runs.

    Read-only once populated; shared across concurrent runs.
    """

    def __init__(self):
        self._tools: dict[str, Tool] = {}
        self._tool_metadata: dict[str, dict[str, Any]] = {}

    def register(self, tool: Tool, metadata: dict[str, Any] | None = None) -> None:
        """Register a tool.

        Args:
            tool: Tool instance to register
            metadata: Optional metadata; ``{"type": "service"}`` marks an entry
                that is not invocable as an agent tool
        """
        if not tool.name:
            raise ValueError("Tool must have a name")

        key = _normalize_tool_name(tool.name)
        log.debug("Registering tool", tool=tool.name)
        self._tools[key] = tool
        if isinstance(metadata, dict):
            self._tool_metadata[key] = dict(metadata)
        elif key not in self._tool_metadata:
            self._tool_metadata[key] = {}

    def unregister(self, name: str) -> None:
        """Unregister a tool."""
        key = _normalize_tool_name(name)
        self._tools.pop(key, None)
        self._tool_metadata.pop(key, None)

    def has_tool(self, name: str) -> bool:
        """Return whether a tool name is currently registered."""
        return _normalize_tool_name(name) in self._tools

    def get_tool_metadata(self, name: str) -> dict[str, Any]:
        """Return metadata associated with a registered tool."""
        return dict(self._tool_metadata.get(_normalize_tool_name(name), {}))

    def resolve(self, name: str) -> Tool | None:
        """Return the tool registered under ``name``, or None."""
        return self._tools.get(_normalize_tool_name(name))

    def get(self, name: str) -> Tool:
        """Get a tool by name.

        Raises:
            ToolNotFoundError if not found
        """
        tool = self.resolve(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return [tool.name for tool in self._tools.values()]

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get all tool definitions for LLM."""
        return [tool.get_definition() for tool in self._tools.values()]


# Global registry
_registry: ToolRegistry | None = None


def get_tool_registry() -> ToolRegistry:
    """Get the global tool registry."""
    global _registry
    if _registry is None:
        _registry = ToolRegistry()
    return _registry


def set_tool_registry(registry: ToolRegistry | None) -> None:
    """Set the global tool registry."""
    global _registry
    _registry = registry
