"""
Event-stream transport: `GET /sse` opens a server-sent-events stream for
server→client messages, `POST /messages` carries client→server messages.

Only one stream is supported at a time. Opening a new stream closes the
previous one. A POST that finds no open stream, or whose stream closes
before the reply is delivered, fails with HTTP 500 and the message is dropped.
"""

import json
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Optional

import anyio
from mcp.server.fastmcp.utilities.logging import get_logger
from starlette.applications import Starlette
from starlette.requests import Request
from sse_starlette.sse import EventSourceResponse
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .errors import TransportStateError

if TYPE_CHECKING:
    from .server import McpServer

logger = get_logger(__name__)

MESSAGES_PATH = "/messages"


class SseConnection:
    """One open event stream. CLOSED → OPEN on creation, → CLOSED on close or client disconnect."""

    def __init__(self, max_buffer_size: int = 100):
        self._send_stream, self._receive_stream = anyio.create_memory_object_stream(max_buffer_size)
        self.closed = False

    async def send(self, message: Dict[str, Any]) -> None:
        if self.closed:
            raise TransportStateError("SSE connection is closed")
        try:
            await self._send_stream.send(message)
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as e:
            self.closed = True
            raise TransportStateError("SSE connection is closed") from e

    def receive_nowait(self) -> Dict[str, Any]:
        return self._receive_stream.receive_nowait()

    async def events(self, endpoint: str) -> AsyncIterator[Dict[str, str]]:
        yield {"event": "endpoint", "data": endpoint}
        async with self._receive_stream:
            async for message in self._receive_stream:
                yield {"event": "message", "data": json.dumps(message)}

    def close(self) -> None:
        self.closed = True
        self._send_stream.close()


class SseBridge:
    def __init__(self, server: "McpServer", messages_path: str = MESSAGES_PATH):
        self.server = server
        self.messages_path = messages_path
        self.connection: Optional[SseConnection] = None

    def connect(self) -> SseConnection:
        """Opens a new connection, closing the current one if any."""
        if self.connection is not None and not self.connection.closed:
            logger.warning("Replacing the open SSE connection with a new one")
            self.connection.close()
        self.connection = SseConnection()
        return self.connection

    def disconnect(self, connection: SseConnection) -> None:
        connection.close()
        if self.connection is connection:
            self.connection = None

    async def handle_sse(self, request: Request) -> Response:
        connection = self.connect()
        logger.info("SSE connection opened")

        async def stream() -> AsyncIterator[Dict[str, str]]:
            try:
                async for event in connection.events(self.messages_path):
                    yield event
            finally:
                self.disconnect(connection)
                logger.info("SSE connection closed")

        return EventSourceResponse(stream())

    async def handle_post_message(self, request: Request) -> Response:
        # Captured at arrival; a stream replaced meanwhile counts as closed
        connection = self.connection
        if connection is None or connection.closed:
            logger.error("Received a message with no open SSE connection")
            return JSONResponse({"error": "No active SSE connection"}, status_code=500)

        body = await request.body()
        response = await self.server.handle_raw(body)
        if response is not None:
            try:
                await connection.send(response)
            except TransportStateError as e:
                logger.error(f"Dropping reply for closed SSE connection: {e}")
                return JSONResponse({"error": str(e)}, status_code=500)
        return Response("Accepted", status_code=202)


def build_app(bridge: SseBridge) -> Starlette:
    return Starlette(
        routes=[
            Route("/sse", bridge.handle_sse, methods=["GET"]),
            Route(bridge.messages_path, bridge.handle_post_message, methods=["POST"]),
        ]
    )
