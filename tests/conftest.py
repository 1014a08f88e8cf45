import sys
from pathlib import Path
from typing import Callable, Generator, List, Tuple
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import pytest_asyncio
from solders.keypair import Keypair

# Ensure the package can be imported without installing it
ROOT_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT_DIR))

from mcp_solana_rpc.config import Settings
from mcp_solana_rpc.server import McpServer, create_server

# --- Settings Fixture ---

@pytest.fixture(scope="function")
def payer_keypair() -> Keypair:
    return Keypair()


@pytest.fixture(scope="function")
def settings(tmp_path: Path, payer_keypair: Keypair) -> Settings:
    """Settings with every credential present and the log file in a temp dir."""
    return Settings(
        rpc_endpoint="http://localhost:8899",
        helius_rpc_url="https://helius.test/?api-key=test",
        dune_api_key="dune-test-key",
        payer_private_key=str(payer_keypair),
        log_file=tmp_path / "app.log",
    )

# --- Mock RPC Client Fixture ---

@pytest.fixture(scope="function")
def mock_rpc_client() -> Generator[AsyncMock, None, None]:
    """Patches the AsyncClient used by the tools; yields the client the tools will see."""
    with patch("mcp_solana_rpc.tools.AsyncClient") as MockAsyncClient:
        client = AsyncMock()
        MockAsyncClient.return_value.__aenter__.return_value = client
        client.constructor = MockAsyncClient
        yield client

# --- Mock HTTP Fixture ---

class HttpRoutes:
    """Routes for httpx.MockTransport keyed by (method, url prefix); records every request."""

    def __init__(self) -> None:
        self.routes: List[Tuple[str, str, Callable[[httpx.Request], httpx.Response]]] = []
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url_prefix: str, handler) -> None:
        if not callable(handler):
            body = handler
            handler = lambda request: httpx.Response(200, json=body)
        self.routes.append((method, url_prefix, handler))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, url_prefix, handler in self.routes:
            if request.method == method and str(request.url).startswith(url_prefix):
                return handler(request)
        return httpx.Response(404, json={"error": f"no route for {request.method} {request.url}"})


@pytest.fixture(scope="function")
def http_routes() -> HttpRoutes:
    return HttpRoutes()


@pytest_asyncio.fixture(scope="function")
async def http_client(http_routes: HttpRoutes):
    async with httpx.AsyncClient(transport=httpx.MockTransport(http_routes)) as client:
        yield client

# --- Server Fixture ---

@pytest.fixture(scope="function")
def server(settings: Settings, http_client: httpx.AsyncClient) -> McpServer:
    return create_server(settings, http_client=http_client)

