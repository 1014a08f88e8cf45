"""
Tool registry.

A tool is a name, a description, a pydantic input model and an async handler.
`dispatch` validates raw JSON arguments against the input model before the
handler runs, so handlers always receive a typed model instance. Whatever a
handler raises is converted into error content; only unknown names and invalid
arguments are reported as protocol errors.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

import pydantic
from mcp.server.fastmcp.utilities.logging import get_logger
from mcp.types import CallToolResult, TextContent
from mcp.types import Tool as ToolDefinition
from pydantic import BaseModel, ConfigDict

from .errors import DuplicateNameError, UnknownToolError, UpstreamError, ValidationError

logger = get_logger(__name__)


class ToolInput(BaseModel):
    """Base class for tool input schemas.

    Validation is strict: a string is never coerced into a number or boolean.
    Fields use snake_case in Python and camelCase aliases on the wire.
    """

    model_config = ConfigDict(strict=True, populate_by_name=True)


class NoInput(ToolInput):
    pass


ToolHandler = Callable[[Any], Awaitable[CallToolResult]]


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    input_model: Type[ToolInput]
    handler: ToolHandler

    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            inputSchema=self.input_model.model_json_schema(by_alias=True),
        )


def text_result(*texts: str) -> CallToolResult:
    """Wraps one or more strings into a successful Result."""
    return CallToolResult(content=[TextContent(type="text", text=text) for text in texts])


def error_result(message: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=f"Error: {message}")], isError=True)


def validation_error_from(exc: pydantic.ValidationError) -> ValidationError:
    """Converts the first pydantic error into a ValidationError with a dotted field path."""
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or "<root>"
    return ValidationError(field, first.get("msg", "invalid value"))


class ToolRegistry:
    """Holds the tools of one server instance, keyed by unique name."""

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def register(self, tool: Tool) -> Tool:
        if tool.name in self._tools:
            raise DuplicateNameError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool
        logger.debug(f"Registered tool {tool.name}")
        return tool

    def tool(self, name: str, description: str, input_model: Type[ToolInput] = NoInput):
        """Decorator form of `register` for async handler functions."""

        def decorator(handler: ToolHandler) -> ToolHandler:
            self.register(Tool(name=name, description=description, input_model=input_model, handler=handler))
            return handler

        return decorator

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def list_tools(self) -> List[ToolDefinition]:
        return [tool.definition() for tool in self._tools.values()]

    def validate(self, name: str, raw_args: Optional[Dict[str, Any]]) -> ToolInput:
        """Resolves the tool and validates `raw_args` against its input model."""
        tool = self.get(name)
        if raw_args is None:
            raw_args = {}
        if not isinstance(raw_args, dict):
            raise ValidationError("arguments", "must be an object")
        try:
            return tool.input_model.model_validate(raw_args)
        except pydantic.ValidationError as e:
            raise validation_error_from(e) from e

    async def dispatch(self, name: str, raw_args: Optional[Dict[str, Any]] = None) -> CallToolResult:
        """Validates the arguments and runs the handler.

        Raises UnknownToolError or ValidationError before the handler runs.
        Never raises for failures inside the handler: those become a Result
        with a single `Error: <message>` text item.
        """
        args = self.validate(name, raw_args)
        tool = self._tools[name]
        logger.info(f"Calling tool {name}")
        try:
            return await tool.handler(args)
        except UpstreamError as e:
            logger.warning(f"Tool {name} failed: {e}")
            return error_result(str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in tool {name}: {e}")
            return error_result(str(e))
