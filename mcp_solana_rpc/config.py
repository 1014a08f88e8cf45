import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from the .env file at the project root
dotenv_path = Path(__file__).parent.parent / '.env'

LAMPORTS_PER_SOL = 1_000_000_000
DEFAULT_RPC_ENDPOINT = "https://api.mainnet-beta.solana.com"


class Settings(BaseModel):
    """Process-wide configuration, read once at startup."""

    rpc_endpoint: str = DEFAULT_RPC_ENDPOINT
    cluster: str = "mainnet-beta"
    helius_rpc_url: Optional[str] = None
    dune_api_key: Optional[str] = None
    payer_private_key: Optional[str] = Field(None, repr=False) # base58 encoded 64 byte keypair
    log_file: Path = Path("app.log")
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 8000


def load_settings(env_file: Optional[Path] = dotenv_path) -> Settings:
    """Loads `.env` (if present) and builds Settings from the environment.

    Credentials that are absent stay None; the tools needing them report the
    missing variable when called instead of failing startup.
    """
    if env_file is not None:
        load_dotenv(dotenv_path=env_file)

    return Settings(
        rpc_endpoint=os.getenv("RPC_ENDPOINT", DEFAULT_RPC_ENDPOINT),
        cluster=os.getenv("SOLANA_CLUSTER", "mainnet-beta"),
        helius_rpc_url=os.getenv("HELIUS_RPC_URL") or None,
        dune_api_key=os.getenv("DUNE_API_KEY") or None,
        payer_private_key=os.getenv("PAYER_PRIVATE_KEY") or None,
        log_file=Path(os.getenv("LOG_FILE", "app.log")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        host=os.getenv("MCP_HOST", "127.0.0.1"),
        port=int(os.getenv("MCP_PORT", "8000")),
    )
