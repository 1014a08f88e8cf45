"""
Minimal Dune Analytics client: execute a saved query with parameters, wait
for the execution to finish, and return its result rows.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import anyio
import httpx
from mcp.server.fastmcp.utilities.logging import get_logger

from .errors import UpstreamError

logger = get_logger(__name__)

DUNE_API_URL = "https://api.dune.com/api/v1"

COMPLETED = "QUERY_STATE_COMPLETED"
TERMINAL_FAILURES = ("QUERY_STATE_FAILED", "QUERY_STATE_CANCELLED", "QUERY_STATE_EXPIRED")

# Saved queries behind getDuneSolanaData
TOP_SIGNERS_QUERY_ID = 2611952
PROGRAM_CALLS_QUERY_ID = 2611885
CPI_PROGRAM_CALLS_QUERY_ID = 2611938


class DuneClient:
    def __init__(self, api_key: str, http_client: httpx.AsyncClient, poll_interval: float = 1.0):
        self.api_key = api_key
        self.http_client = http_client
        self.poll_interval = poll_interval

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await self.http_client.request(
                method, f"{DUNE_API_URL}{path}", headers={"X-Dune-API-Key": self.api_key}, **kwargs
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as e:
            raise UpstreamError(f"Dune API request failed: {e}", cause=e) from e

    async def run_query(self, query_id: int, parameters: Optional[Dict[str, Any]] = None) -> Optional[List[Dict[str, Any]]]:
        """Executes a saved query and returns its rows (None if the result has no rows)."""
        execution = await self._request(
            "POST", f"/query/{query_id}/execute", json={"query_parameters": parameters or {}}
        )
        execution_id = execution["execution_id"]
        logger.debug(f"Dune query {query_id} started as execution {execution_id}")

        while True:
            status = await self._request("GET", f"/execution/{execution_id}/status")
            state = status.get("state")
            if state == COMPLETED:
                break
            if state in TERMINAL_FAILURES:
                raise UpstreamError(f"Dune query {query_id} ended in state {state}")
            await anyio.sleep(self.poll_interval)

        results = await self._request("GET", f"/execution/{execution_id}/results")
        return (results.get("result") or {}).get("rows")

    async def run_queries(
        self, queries: Sequence[Tuple[int, Optional[Dict[str, Any]]]]
    ) -> List[Optional[List[Dict[str, Any]]]]:
        """Runs saved queries concurrently and returns their rows in order.

        The first failure cancels the queries still polling and is re-raised as is.
        """
        rows: List[Optional[List[Dict[str, Any]]]] = [None] * len(queries)
        failures: List[Exception] = []

        async with anyio.create_task_group() as tg:

            async def run(index: int, query_id: int, parameters: Optional[Dict[str, Any]]) -> None:
                try:
                    rows[index] = await self.run_query(query_id, parameters)
                except Exception as e:
                    failures.append(e)
                    tg.cancel_scope.cancel()

            for index, (query_id, parameters) in enumerate(queries):
                tg.start_soon(run, index, query_id, parameters)

        if failures:
            raise failures[0]
        return rows
