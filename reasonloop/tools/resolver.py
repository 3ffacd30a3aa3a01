"""Turn tool references and ad-hoc tool specs into uniform invocable handles."""

import inspect
from typing import Any, Callable, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from reasonloop.credentials import credential_key, merge_credentials
from reasonloop.exceptions import ToolExecutionError, ToolResolutionWarning
from reasonloop.llm.base import ToolDefinition
from reasonloop.logging import get_logger
from reasonloop.tools.registry import Tool, ToolRegistry, ToolResult, get_tool_registry

log = get_logger(__name__)

ToolExecutor = Callable[[dict[str, Any], dict[str, str], dict[str, Any], dict[str, Any] | None], Any]


class ToolReference(BaseModel):
    """Reference to a registered tool, with optional per-tool credentials/config."""

    name: str = Field(min_length=1)
    credentials: dict[str, str] = Field(default_factory=dict)
    config: dict[str, Any] = Field(default_factory=dict)

    @field_validator("credentials", mode="before")
    @classmethod
    def _stringify_credential_keys(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return {credential_key(key): secret for key, secret in value.items()}
        return value


class CustomToolSpec(BaseModel):
    """Ad-hoc tool defined at run time.

    ``parameters`` is a JSON schema (or a bare ``{field: schema}`` map) or a
    pydantic model class; ``func`` receives the argument dict and may be sync
    or async.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    parameters: dict[str, Any] | type[BaseModel]
    func: Callable[..., Any]

    @field_validator("name", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value.strip()


def normalize_parameters_schema(parameters: Mapping[str, Any] | type[BaseModel] | None) -> dict[str, Any]:
    """Return an object-typed JSON schema for a tool's parameters."""
    if isinstance(parameters, type) and issubclass(parameters, BaseModel):
        return parameters.model_json_schema()
    schema = dict(parameters or {})
    if schema.get("type") == "object" or "properties" in schema:
        schema.setdefault("type", "object")
        schema.setdefault("properties", {})
        return schema
    # Bare field map: every listed field is required.
    return {
        "type": "object",
        "properties": schema,
        "required": list(schema.keys()),
    }


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ToolHandle:
    """Uniform invocable tool, registered or ad-hoc, bound to one run."""

    def __init__(
        self,
        name: str,
        description: str,
        parameters: dict[str, Any],
        executor: ToolExecutor,
        credential_types: tuple[str, ...] = (),
        credentials: dict[str, str] | None = None,
        config: dict[str, Any] | None = None,
        source: str = "registry",
    ):
        self.name = name
        self.description = description
        self.parameters = parameters
        self.credential_types = tuple(credential_types)
        self.credentials = dict(credentials or {})
        self.config = dict(config or {})
        self.source = source
        self._executor = executor

    def definition(self) -> ToolDefinition:
        """Definition bound to the model."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )

    async def invoke(self, arguments: dict[str, Any], context: dict[str, Any] | None = None) -> Any:
        """Run the tool and return its output.

        Raises:
            ToolExecutionError if the executor fails or returns a failed ToolResult
        """
        try:
            result = await _maybe_await(
                self._executor(dict(arguments or {}), self.credentials, self.config, context)
            )
        except ToolExecutionError:
            raise
        except Exception as e:
            raise ToolExecutionError(self.name, str(e) or e.__class__.__name__) from e

        if isinstance(result, ToolResult):
            if not result.success:
                raise ToolExecutionError(self.name, result.error or "Tool execution failed")
            return result.content
        return result

    def __repr__(self) -> str:
        return f"ToolHandle(name={self.name!r}, source={self.source!r})"


def _registered_executor(tool: Tool) -> ToolExecutor:
    async def execute(
        arguments: dict[str, Any],
        credentials: dict[str, str],
        config: dict[str, Any],
        context: dict[str, Any] | None,
    ) -> Any:
        tool.validate_arguments(arguments)
        return await tool.invoke(arguments, credentials, config, context)

    return execute


def _custom_executor(spec: CustomToolSpec) -> ToolExecutor:
    model = spec.parameters if isinstance(spec.parameters, type) else None

    async def execute(
        arguments: dict[str, Any],
        credentials: dict[str, str],
        config: dict[str, Any],
        context: dict[str, Any] | None,
    ) -> Any:
        payload = arguments
        if model is not None:
            payload = model.model_validate(arguments).model_dump()
        return await _maybe_await(spec.func(payload))

    return execute


class ToolResolver:
    """Resolve a run's tool configuration against the tool registry."""

    def __init__(self, registry: ToolRegistry | None = None):
        self.registry = registry or get_tool_registry()
        self.warnings: list[ToolResolutionWarning] = []

    def _warn(self, name: str, reason: str) -> None:
        warning = ToolResolutionWarning(name, reason)
        self.warnings.append(warning)
        log.warning("Tool skipped", tool=name, reason=reason)

    def _coerce_custom(self, raw: CustomToolSpec | Mapping[str, Any]) -> CustomToolSpec | None:
        if isinstance(raw, CustomToolSpec):
            return raw
        try:
            return CustomToolSpec.model_validate(dict(raw))
        except (ValidationError, TypeError, ValueError) as e:
            name = str(raw.get("name", "")) if isinstance(raw, Mapping) else ""
            self._warn(name or "<unnamed>", f"invalid custom tool definition: {e}")
            return None

    def _coerce_reference(self, raw: ToolReference | Mapping[str, Any] | str) -> ToolReference | None:
        if isinstance(raw, ToolReference):
            return raw
        try:
            if isinstance(raw, str):
                return ToolReference(name=raw)
            return ToolReference.model_validate(dict(raw))
        except (ValidationError, TypeError, ValueError) as e:
            self._warn(str(raw), f"invalid tool reference: {e}")
            return None

    def resolve(
        self,
        references: list[ToolReference | Mapping[str, Any] | str] | None = None,
        custom_tools: list[CustomToolSpec | Mapping[str, Any]] | None = None,
        agent_credentials: Mapping[str, str] | None = None,
    ) -> list[ToolHandle]:
        """Build tool handles: custom tools first, then registered references.

        Unknown or non-invocable references are skipped with a warning.
        """
        handles: list[ToolHandle] = []
        seen: set[str] = set()
        agent_credentials = dict(agent_credentials or {})

        def _add(handle: ToolHandle) -> None:
            key = handle.name.strip().lower()
            if key in seen:
                self._warn(handle.name, "duplicate tool name")
                return
            seen.add(key)
            handles.append(handle)

        for raw in custom_tools or []:
            spec = self._coerce_custom(raw)
            if spec is None:
                continue
            log.info("Initializing custom tool", tool=spec.name)
            _add(ToolHandle(
                name=spec.name,
                description=spec.description,
                parameters=normalize_parameters_schema(spec.parameters),
                executor=_custom_executor(spec),
                source="custom",
            ))

        for raw in references or []:
            reference = self._coerce_reference(raw)
            if reference is None:
                continue
            tool = self.registry.resolve(reference.name)
            if tool is None:
                self._warn(reference.name, "not found in registry")
                continue
            metadata = self.registry.get_tool_metadata(reference.name)
            if str(metadata.get("type", "tool")) != "tool":
                self._warn(reference.name, "registry entry is not a tool")
                continue
            if not callable(getattr(tool, "invoke", None)):
                self._warn(reference.name, "registry entry is not invocable")
                continue

            credential_types = tuple(credential_key(item) for item in tool.credential_types)
            inherited = {
                cred_type: agent_credentials[cred_type]
                for cred_type in credential_types
                if agent_credentials.get(cred_type)
            }
            credentials = merge_credentials(inherited, reference.credentials)
            log.info(
                "Passing credentials to tool",
                tool=tool.name,
                credential_types=sorted(credentials),
            )
            _add(ToolHandle(
                name=tool.name,
                description=tool.description,
                parameters=normalize_parameters_schema(tool.parameters),
                executor=_registered_executor(tool),
                credential_types=credential_types,
                credentials=credentials,
                config=reference.config,
                source="registry",
            ))

        return handles
