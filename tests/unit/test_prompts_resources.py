import httpx
import pytest

from mcp_solana_rpc.errors import DuplicateNameError, UnknownPromptError, UnknownResourceError, ValidationError
from mcp_solana_rpc.prompts import PromptRegistry, register_solana_prompts
from mcp_solana_rpc.resources import Resource, ResourceRegistry, register_solana_docs

pytestmark = pytest.mark.asyncio

INSTALLATION_URI = "solana://docs/intro/installation"
CLUSTERS_URI = "solana://docs/references/clusters"


@pytest.fixture
def prompts() -> PromptRegistry:
    registry = PromptRegistry()
    register_solana_prompts(registry)
    return registry

# --- Prompts ---

async def test_solana_prompts_are_listed(prompts: PromptRegistry):
    names = [prompt.name for prompt in prompts.list_prompts()]
    assert names == [
        "calculate-storage-deposit",
        "minimum-amount-of-sol-for-storage",
        "why-did-my-transaction-fail",
        "how-much-did-this-transaction-cost",
        "what-happened-in-transaction",
    ]


@pytest.mark.parametrize("name", [
    "why-did-my-transaction-fail",
    "how-much-did-this-transaction-cost",
    "what-happened-in-transaction",
])
async def test_render_substitutes_signature(prompts: PromptRegistry, name: str):
    result = prompts.render(name, {"signature": "abc"})

    (message,) = result.messages
    assert message.role == "user"
    assert "abc" in message.content.text


async def test_render_without_arguments(prompts: PromptRegistry):
    result = prompts.render("minimum-amount-of-sol-for-storage")
    assert "0 bytes" in result.messages[0].content.text


async def test_render_unknown_prompt(prompts: PromptRegistry):
    with pytest.raises(UnknownPromptError):
        prompts.render("nope", {})


async def test_render_missing_argument(prompts: PromptRegistry):
    with pytest.raises(ValidationError) as exc_info:
        prompts.render("calculate-storage-deposit", {})
    assert exc_info.value.field == "bytes"


async def test_register_duplicate_prompt(prompts: PromptRegistry):
    with pytest.raises(DuplicateNameError):
        register_solana_prompts(prompts)

# --- Resources ---

def docs_registry(handler) -> ResourceRegistry:
    registry = ResourceRegistry()
    register_solana_docs(registry, httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    return registry


async def test_resolve_fetches_remote_document():
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(200, text="# Clusters")

    registry = docs_registry(handler)
    (content,) = await registry.resolve(CLUSTERS_URI)

    assert content.text == "# Clusters"
    assert str(content.uri) == CLUSTERS_URI
    assert requested == [
        "https://raw.githubusercontent.com/solana-foundation/solana-com/main/content/docs/references/clusters.mdx"
    ]


async def test_resolve_network_failure_becomes_error_text():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    registry = docs_registry(handler)
    (content,) = await registry.resolve(INSTALLATION_URI)

    assert content.text == "Error: connection refused"


async def test_resolve_unknown_uri():
    registry = docs_registry(lambda request: httpx.Response(200, text=""))
    with pytest.raises(UnknownResourceError):
        await registry.resolve("solana://docs/unknown")


async def test_register_duplicate_uri():
    registry = ResourceRegistry()

    async def fetch(uri):
        return []

    registry.register(Resource(name="a", uri="solana://a", handler=fetch))
    with pytest.raises(DuplicateNameError):
        registry.register(Resource(name="b", uri="solana://a", handler=fetch))
