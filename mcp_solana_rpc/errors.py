"""
Error taxonomy for the Solana RPC MCP server.

Protocol-level errors carry a JSON-RPC error code and are reported through the
transport's error channel. Everything a tool handler raises is turned into
error content by the tool registry instead, so the calling agent always gets a
response for business-level failures.
"""

from typing import Optional

from mcp.types import INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, ErrorData

# MCP error code for reading an unknown resource URI
RESOURCE_NOT_FOUND = -32002


class McpServerError(Exception):
    """Base class for all errors raised by this package."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_error_data(self) -> ErrorData:
        """Builds the JSON-RPC `error` member for this error."""
        return ErrorData(code=self.code, message=self.message)


class DuplicateNameError(McpServerError):
    """A tool, resource or prompt with the same name is already registered."""


class ValidationError(McpServerError):
    """Tool or prompt arguments do not match the declared schema."""

    code = INVALID_PARAMS

    def __init__(self, field: str, message: str):
        super().__init__(f"Invalid argument '{field}': {message}")
        self.field = field

    def to_error_data(self) -> ErrorData:
        return ErrorData(code=self.code, message=self.message, data={"field": self.field})


class UnknownToolError(McpServerError):
    code = INVALID_PARAMS

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class UnknownPromptError(McpServerError):
    code = INVALID_PARAMS

    def __init__(self, name: str):
        super().__init__(f"Unknown prompt: {name}")
        self.name = name


class UnknownResourceError(McpServerError):
    code = RESOURCE_NOT_FOUND

    def __init__(self, uri: str):
        super().__init__(f"Unknown resource: {uri}")
        self.uri = uri


class MethodNotFoundError(McpServerError):
    code = METHOD_NOT_FOUND

    def __init__(self, method: str):
        super().__init__(f"Method not found: {method}")
        self.method = method


class InvalidRequestError(McpServerError):
    """The message is not a well-formed JSON-RPC request."""

    code = INVALID_REQUEST


class TransportStateError(McpServerError):
    """A message arrived with no open connection to route the reply to."""


class UpstreamError(McpServerError):
    """An external collaborator (RPC node, HTTP API) failed or returned no data."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class IdlError(UpstreamError):
    """A program IDL is missing, undecodable, or does not fit the supplied input."""
