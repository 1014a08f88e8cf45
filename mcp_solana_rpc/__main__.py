import argparse

import anyio
import uvicorn

from .config import load_settings
from .logs import configure_logging
from .server import create_server
from .sse import SseBridge, build_app
from .stdio import StdioBridge


def main() -> None:
    settings = load_settings()

    parser = argparse.ArgumentParser(description="Solana RPC tools as an MCP server")
    parser.add_argument("--transport", choices=["stdio", "sse"], default="stdio")
    parser.add_argument("--host", default=settings.host, help="Bind address for the sse transport")
    parser.add_argument("--port", type=int, default=settings.port, help="Port for the sse transport")
    args = parser.parse_args()

    configure_logging(settings)
    server = create_server(settings)

    if args.transport == "sse":
        uvicorn.run(build_app(SseBridge(server)), host=args.host, port=args.port, log_level=settings.log_level.lower())
    else:
        anyio.run(StdioBridge(server).run)


if __name__ == "__main__":
    main()
