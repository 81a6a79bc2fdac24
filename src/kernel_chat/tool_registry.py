"""
Tool registry for schema generation, argument checking and tool execution.

Maps typed Python callables to OpenAI chat-completions tool schemas and
dispatches the tool calls the model requests back to them.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Tuple, get_type_hints

from .errors import ArgumentError, DuplicateNameError, HandlerError, ToolError, UnknownToolError

logger = logging.getLogger(__name__)

_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
}


class ToolInvocationRequest(NamedTuple):
    """A tool call requested by the backend."""

    call_id: str
    tool_name: str
    arguments: Dict[str, Any]


def _json_type(annotation: Any) -> str:
    return _JSON_TYPES.get(annotation, "string")


@dataclass(frozen=True)
class ToolDescriptor:
    """Name, description, parameter schema and handler of one tool."""

    name: str
    description: str
    parameter_schema: Mapping[str, str]
    handler: Callable[..., Any] = field(compare=False)
    required: Tuple[str, ...] = ()

    @classmethod
    def from_callable(
        cls,
        callable_func: Callable,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> "ToolDescriptor":
        """Build a descriptor from the callable's signature and docstring."""
        tool_name = name or callable_func.__name__
        sig = inspect.signature(callable_func)
        type_hints = get_type_hints(callable_func)

        # Get description from docstring if not provided
        if description is None:
            doc = inspect.getdoc(callable_func)
            description = doc.strip() if doc else f"Execute {tool_name}"

        parameter_schema = {}
        required = []
        for param_name, param in sig.parameters.items():
            # Skip self parameter
            if param_name == "self":
                continue
            parameter_schema[param_name] = _json_type(type_hints.get(param_name, str))
            if param.default is inspect.Parameter.empty:
                required.append(param_name)

        return cls(
            name=tool_name,
            description=description,
            parameter_schema=parameter_schema,
            handler=callable_func,
            required=tuple(required),
        )

    def to_openai_schema(self) -> Dict[str, Any]:
        properties = {
            param_name: {"type": json_type, "description": f"The {param_name} parameter"}
            for param_name, json_type in self.parameter_schema.items()
        }
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": list(self.required),
                },
            },
        }

    def check_arguments(self, arguments: Mapping[str, Any]) -> Dict[str, Any]:
        """Validate arguments against the schema and return the coerced copy.

        Raises:
            ArgumentError: On missing, extra or mistyped keys
        """
        if not isinstance(arguments, Mapping):
            raise ArgumentError(f"Arguments for '{self.name}' must be an object")

        extra = sorted(set(arguments) - set(self.parameter_schema))
        if extra:
            raise ArgumentError(f"Unexpected arguments for '{self.name}': {', '.join(extra)}")
        missing = [p for p in self.required if p not in arguments]
        if missing:
            raise ArgumentError(f"Missing arguments for '{self.name}': {', '.join(missing)}")

        checked = {}
        for param_name, value in arguments.items():
            checked[param_name] = _coerce(self.name, param_name, self.parameter_schema[param_name], value)
        return checked


def _coerce(tool_name: str, param_name: str, json_type: str, value: Any) -> Any:
    # bool is an int subclass, so it is rejected explicitly for numeric types
    if json_type == "number":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            try:
                return float(value)
            except OverflowError:
                raise ArgumentError(
                    f"Argument '{param_name}' of '{tool_name}' is too large for a number"
                ) from None
    elif json_type == "integer":
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif json_type == "boolean":
        if isinstance(value, bool):
            return value
    elif isinstance(value, str):
        return value
    raise ArgumentError(
        f"Argument '{param_name}' of '{tool_name}' must be of type {json_type}, "
        f"got {type(value).__name__}"
    )


def format_tool_result(result: Any) -> str:
    """Render a handler result as Tool message content."""
    if result is None:
        return "Tool executed successfully"
    # Whole floats read as integers, so Add(2, 2) gives "4"
    if isinstance(result, float) and result.is_integer():
        return str(int(result))
    return str(result)


class ToolRegistry:
    """Registry for managing tools and their schemas."""

    def __init__(self):
        self.tools: Dict[str, ToolDescriptor] = {}  # name -> descriptor, in registration order

    def register(self, descriptor: ToolDescriptor) -> None:
        """
        Register a tool descriptor.

        Raises:
            DuplicateNameError: If a tool with the same name is registered
        """
        if descriptor.name in self.tools:
            raise DuplicateNameError(f"Tool '{descriptor.name}' is already registered")
        self.tools[descriptor.name] = descriptor
        logger.debug(f"Registered tool {descriptor.name}")

    def register_callable(
        self,
        callable_func: Callable,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> ToolDescriptor:
        """
        Register a callable (function or method) and generate its descriptor.

        Args:
            callable_func: The callable to register
            name: Optional name override (defaults to callable name)
            description: Optional description (defaults to the docstring)
        """
        descriptor = ToolDescriptor.from_callable(callable_func, name, description)
        self.register(descriptor)
        return descriptor

    def register_plugin(self, plugin: Any) -> List[ToolDescriptor]:
        """Register every tool a plugin declares through hook_provide_tools."""
        registered = []
        for tool in plugin.hook_provide_tools():
            if isinstance(tool, ToolDescriptor):
                self.register(tool)
                registered.append(tool)
            else:
                registered.append(self.register_callable(tool))
        return registered

    def describe_all(self) -> List[ToolDescriptor]:
        """Descriptors in registration order, for advertising to the backend."""
        return list(self.tools.values())

    def get_schemas(self) -> List[Dict[str, Any]]:
        """Get all tool schemas for the OpenAI API."""
        return [descriptor.to_openai_schema() for descriptor in self.tools.values()]

    def get_tool_names(self) -> List[str]:
        """Get list of registered tool names."""
        return list(self.tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self.tools

    def invoke(self, name: str, arguments: Mapping[str, Any]) -> Any:
        """
        Execute a registered tool by name.

        Args:
            name: Tool name
            arguments: Tool arguments

        Returns:
            Tool execution result

        Raises:
            UnknownToolError: If tool is not registered
            ArgumentError: If arguments do not match the parameter schema
            HandlerError: If the handler raises
        """
        descriptor = self.tools.get(name)
        if descriptor is None:
            raise UnknownToolError(f"Tool '{name}' not found in registry")

        checked = descriptor.check_arguments(arguments)
        try:
            return descriptor.handler(**checked)
        except Exception as e:
            raise HandlerError(f"Tool '{name}' failed: {e}") from e

    def execute(self, request: ToolInvocationRequest) -> str:
        """
        Dispatch a backend tool call and return the Tool message content.

        Registry errors are returned as an error string so the model can
        recover instead of the turn failing.
        """
        try:
            result = self.invoke(request.tool_name, request.arguments)
        except ToolError as e:
            logger.info(f"TOOL ERROR: {request.tool_name} - {str(e)}")
            return f"Error: {str(e)}"
        return format_tool_result(result)

    def __len__(self) -> int:
        """Get number of registered tools."""
        return len(self.tools)
