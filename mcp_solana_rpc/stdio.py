"""
Stream transport: newline-delimited JSON-RPC over stdin/stdout.

Lines are read one at a time; each message is then handled in its own task so
a slow tool call does not block reading the next message. Writes are
serialized so responses never interleave on stdout.
"""

import json
import sys
from io import TextIOWrapper
from typing import TYPE_CHECKING, Any, Dict, Optional, Union

import anyio
from anyio.abc import TaskGroup
from mcp.server.fastmcp.utilities.logging import get_logger

if TYPE_CHECKING:
    from .server import McpServer

logger = get_logger(__name__)


class StdioBridge:
    def __init__(self, server: "McpServer", stdin: Optional[anyio.AsyncFile] = None, stdout: Optional[anyio.AsyncFile] = None):
        self.server = server
        self._stdin = stdin
        self._stdout = stdout
        self._write_lock = anyio.Lock()
        self.is_open = False

    async def run(self) -> None:
        """Serves until stdin reaches EOF; in-flight handlers are awaited before returning."""
        # Raw bytes; undecodable lines become parse errors instead of ending the loop
        stdin = self._stdin or anyio.wrap_file(sys.stdin.buffer)
        stdout = self._stdout or anyio.wrap_file(TextIOWrapper(sys.stdout.buffer, encoding="utf-8"))

        self.is_open = True
        logger.info("stdio transport open")
        try:
            async with anyio.create_task_group() as tg:
                await self._read_loop(stdin, stdout, tg)
        finally:
            self.is_open = False
            logger.info("stdio transport closed")

    async def _read_loop(self, stdin: anyio.AsyncFile, stdout: anyio.AsyncFile, tg: TaskGroup) -> None:
        async for line in stdin:
            if not line.strip():
                continue
            tg.start_soon(self._handle_line, line, stdout)

    async def _handle_line(self, line: Union[bytes, str], stdout: anyio.AsyncFile) -> None:
        response = await self.server.handle_raw(line)
        if response is not None:
            await self._write(stdout, response)

    async def _write(self, stdout: anyio.AsyncFile, message: Dict[str, Any]) -> None:
        async with self._write_lock:
            await stdout.write(json.dumps(message) + "\n")
            await stdout.flush()
