"""
Resource registry and the Solana documentation resources.

Resources are matched by exact URI; no template variables are extracted.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

import httpx
from mcp.server.fastmcp.utilities.logging import get_logger
from mcp.types import Resource as ResourceDefinition
from mcp.types import TextResourceContents

from .errors import DuplicateNameError, UnknownResourceError

logger = get_logger(__name__)

SOLANA_DOCS_BASE_URL = "https://raw.githubusercontent.com/solana-foundation/solana-com/main/content/docs"

ResourceHandler = Callable[[str], Awaitable[List[TextResourceContents]]]


@dataclass(frozen=True)
class Resource:
    name: str
    uri: str
    handler: ResourceHandler
    description: Optional[str] = None
    mime_type: Optional[str] = None

    def definition(self) -> ResourceDefinition:
        return ResourceDefinition(
            name=self.name,
            uri=self.uri,
            description=self.description,
            mimeType=self.mime_type,
        )


class ResourceRegistry:
    def __init__(self) -> None:
        self._resources: Dict[str, Resource] = {}

    def __len__(self) -> int:
        return len(self._resources)

    def register(self, resource: Resource) -> Resource:
        if resource.uri in self._resources:
            raise DuplicateNameError(f"Resource '{resource.uri}' is already registered")
        self._resources[resource.uri] = resource
        return resource

    def list_resources(self) -> List[ResourceDefinition]:
        return [resource.definition() for resource in self._resources.values()]

    async def resolve(self, uri: str) -> List[TextResourceContents]:
        """Fetches the contents of the resource registered under `uri`.

        Raises UnknownResourceError for an unregistered URI. A failing fetch
        handler yields a single content item carrying `Error: <message>`.
        """
        resource = self._resources.get(uri)
        if resource is None:
            raise UnknownResourceError(uri)
        try:
            return await resource.handler(uri)
        except Exception as e:
            logger.warning(f"Error reading resource {uri}: {e}")
            return [TextResourceContents(uri=uri, text=f"Error: {e}")]


def remote_document(url: str, http_client: Optional[httpx.AsyncClient] = None) -> ResourceHandler:
    """Builds a fetch handler returning the raw text of a fixed remote document."""

    async def fetch(uri: str) -> List[TextResourceContents]:
        if http_client is not None:
            response = await http_client.get(url)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.get(url)
        response.raise_for_status()
        return [TextResourceContents(uri=uri, text=response.text, mimeType="text/markdown")]

    return fetch


def register_solana_docs(registry: ResourceRegistry, http_client: Optional[httpx.AsyncClient] = None) -> None:
    registry.register(Resource(
        name="solanaDocsInstallation",
        uri="solana://docs/intro/installation",
        description="Solana CLI and toolchain installation guide",
        mime_type="text/markdown",
        handler=remote_document(f"{SOLANA_DOCS_BASE_URL}/intro/installation.mdx", http_client),
    ))
    registry.register(Resource(
        name="solanaDocsClusters",
        uri="solana://docs/references/clusters",
        description="Solana clusters and their public RPC endpoints",
        mime_type="text/markdown",
        handler=remote_document(f"{SOLANA_DOCS_BASE_URL}/references/clusters.mdx", http_client),
    ))
