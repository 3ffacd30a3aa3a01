"""Tools package for reasonloop."""

from reasonloop.tools.registry import (
    Tool,
    ToolRegistry,
    ToolResult,
    get_tool_registry,
    set_tool_registry,
)
from reasonloop.tools.resolver import (
    CustomToolSpec,
    ToolHandle,
    ToolReference,
    ToolResolver,
    normalize_parameters_schema,
)

__all__ = [
    "CustomToolSpec",
    "Tool",
    "ToolHandle",
    "ToolReference",
    "ToolRegistry",
    "ToolResolver",
    "ToolResult",
    "get_tool_registry",
    "normalize_parameters_schema",
    "set_tool_registry",
]
