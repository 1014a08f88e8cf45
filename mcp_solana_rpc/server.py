"""
MCP protocol router.

`McpServer` owns the tool, resource and prompt registries of one server
instance and turns decoded JSON-RPC messages into responses. Transports feed
it raw messages and write back whatever it returns; notifications produce no
response.
"""

import json
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import httpx
import pydantic
from mcp.server.fastmcp.utilities.logging import get_logger
from mcp.shared.version import SUPPORTED_PROTOCOL_VERSIONS
from mcp.types import (
    INTERNAL_ERROR,
    LATEST_PROTOCOL_VERSION,
    PARSE_ERROR,
    EmptyResult,
    ErrorData,
    Implementation,
    InitializeResult,
    JSONRPCError,
    JSONRPCResponse,
    ListPromptsResult,
    ListResourcesResult,
    ListResourceTemplatesResult,
    ListToolsResult,
    PromptsCapability,
    ReadResourceResult,
    ResourcesCapability,
    ServerCapabilities,
    ToolsCapability,
)
from pydantic import BaseModel, Field

from .config import Settings
from .errors import InvalidRequestError, McpServerError, MethodNotFoundError
from .prompts import PromptRegistry, register_solana_prompts
from .registry import ToolRegistry, validation_error_from
from .resources import ResourceRegistry, register_solana_docs
from .tools import register_solana_tools

logger = get_logger(__name__)

SERVER_NAME = "Solana RPC Tools"
SERVER_VERSION = "1.0.0"

# --- Envelopes ---

class JsonRpcRequest(BaseModel):
    jsonrpc: str = Field(..., pattern=r"^2\.0$")
    id: Optional[Union[int, str]] = None
    method: str
    params: Optional[Dict[str, Any]] = None

    @property
    def is_notification(self) -> bool:
        return "id" not in self.model_fields_set


class CallToolParams(BaseModel):
    name: str
    arguments: Optional[Dict[str, Any]] = None


class ReadResourceParams(BaseModel):
    uri: str


class GetPromptParams(BaseModel):
    name: str
    arguments: Optional[Dict[str, Any]] = None


def _parse_params(model, params: Optional[Dict[str, Any]]):
    try:
        return model.model_validate(params or {})
    except pydantic.ValidationError as e:
        raise validation_error_from(e) from e


def _dump(result: BaseModel) -> Dict[str, Any]:
    return result.model_dump(by_alias=True, mode="json", exclude_none=True)


def success_response(request_id: Union[int, str], result: BaseModel) -> Dict[str, Any]:
    return _dump(JSONRPCResponse(jsonrpc="2.0", id=request_id, result=_dump(result)))


def error_response(request_id: Optional[Union[int, str]], error: ErrorData) -> Dict[str, Any]:
    if request_id is None:
        # JSONRPCError requires an id; unidentifiable requests are answered with a null one
        return {"jsonrpc": "2.0", "id": None, "error": _dump(error)}
    return _dump(JSONRPCError(jsonrpc="2.0", id=request_id, error=error))


def _request_id(message: Any) -> Optional[Union[int, str]]:
    request_id = message.get("id") if isinstance(message, dict) else None
    if isinstance(request_id, bool) or not isinstance(request_id, (int, str)):
        return None
    return request_id


# --- Server ---

class McpServer:
    def __init__(
        self,
        name: str = SERVER_NAME,
        version: str = SERVER_VERSION,
        tools: Optional[ToolRegistry] = None,
        resources: Optional[ResourceRegistry] = None,
        prompts: Optional[PromptRegistry] = None,
    ):
        self.name = name
        self.version = version
        self.tools = tools if tools is not None else ToolRegistry()
        self.resources = resources if resources is not None else ResourceRegistry()
        self.prompts = prompts if prompts is not None else PromptRegistry()
        self._routes: Dict[str, Callable[[Optional[Dict[str, Any]]], Awaitable[BaseModel]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "resources/list": self._list_resources,
            "resources/templates/list": self._list_resource_templates,
            "resources/read": self._read_resource,
            "prompts/list": self._list_prompts,
            "prompts/get": self._get_prompt,
        }

    async def handle_raw(self, raw: Union[str, bytes]) -> Optional[Dict[str, Any]]:
        """Decodes one JSON message and handles it."""
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Discarding undecodable message: {e}")
            return error_response(None, ErrorData(code=PARSE_ERROR, message=f"Parse error: {e}"))
        return await self.handle_message(message)

    async def handle_message(self, message: Any) -> Optional[Dict[str, Any]]:
        """Routes one decoded JSON-RPC message; returns the response, or None for notifications."""
        if isinstance(message, dict) and "method" not in message and ("result" in message or "error" in message):
            # Replies to server-initiated requests; this server sends none
            return None

        try:
            request = JsonRpcRequest.model_validate(message)
        except pydantic.ValidationError as e:
            error = InvalidRequestError(f"Invalid request: {e.errors()[0]['msg']}")
            return error_response(_request_id(message), error.to_error_data())

        if request.is_notification:
            logger.debug(f"Received notification {request.method}")
            return None
        if request.id is None:
            return error_response(None, InvalidRequestError("Request id must be a string or number").to_error_data())

        route = self._routes.get(request.method)
        try:
            if route is None:
                raise MethodNotFoundError(request.method)
            result = await route(request.params)
        except McpServerError as e:
            logger.info(f"Request {request.id} ({request.method}) failed: {e}")
            return error_response(request.id, e.to_error_data())
        except Exception as e:
            logger.exception(f"Unhandled error for {request.method}: {e}")
            return error_response(request.id, ErrorData(code=INTERNAL_ERROR, message=str(e)))
        return success_response(request.id, result)

    # --- Methods ---

    async def _initialize(self, params: Optional[Dict[str, Any]]) -> InitializeResult:
        requested = (params or {}).get("protocolVersion")
        logger.info(f"Client initializing (requested protocol {requested})")
        # Echo the client's version when supported, otherwise offer ours
        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        return InitializeResult(
            protocolVersion=version,
            capabilities=ServerCapabilities(
                tools=ToolsCapability(listChanged=False),
                resources=ResourcesCapability(subscribe=False, listChanged=False),
                prompts=PromptsCapability(listChanged=False),
            ),
            serverInfo=Implementation(name=self.name, version=self.version),
        )

    async def _ping(self, params: Optional[Dict[str, Any]]) -> EmptyResult:
        return EmptyResult()

    async def _list_tools(self, params: Optional[Dict[str, Any]]) -> ListToolsResult:
        return ListToolsResult(tools=self.tools.list_tools())

    async def _call_tool(self, params: Optional[Dict[str, Any]]):
        call = _parse_params(CallToolParams, params)
        return await self.tools.dispatch(call.name, call.arguments)

    async def _list_resources(self, params: Optional[Dict[str, Any]]) -> ListResourcesResult:
        return ListResourcesResult(resources=self.resources.list_resources())

    async def _list_resource_templates(self, params: Optional[Dict[str, Any]]) -> ListResourceTemplatesResult:
        return ListResourceTemplatesResult(resourceTemplates=[])

    async def _read_resource(self, params: Optional[Dict[str, Any]]) -> ReadResourceResult:
        read = _parse_params(ReadResourceParams, params)
        return ReadResourceResult(contents=await self.resources.resolve(read.uri))

    async def _list_prompts(self, params: Optional[Dict[str, Any]]) -> ListPromptsResult:
        return ListPromptsResult(prompts=self.prompts.list_prompts())

    async def _get_prompt(self, params: Optional[Dict[str, Any]]):
        get = _parse_params(GetPromptParams, params)
        return self.prompts.render(get.name, get.arguments)


def create_server(settings: Settings, http_client: Optional[httpx.AsyncClient] = None) -> McpServer:
    """Builds the server with every Solana tool, resource and prompt registered."""
    server = McpServer()
    register_solana_tools(server.tools, settings, http_client)
    register_solana_docs(server.resources, http_client)
    register_solana_prompts(server.prompts)
    logger.info(
        f"Created {server.name} with {len(server.tools)} tools, "
        f"{len(server.resources)} resources and {len(server.prompts)} prompts"
    )
    return server
