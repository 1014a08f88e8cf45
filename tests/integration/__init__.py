"""
Integration Tests for MCP Solana RPC

These tests run the Solana tools through the tool registry with a mocked RPC
client (`mcp_solana_rpc.tools.AsyncClient` is patched) and mocked HTTP APIs
(`httpx.MockTransport`), and drive the stdio and SSE transports end to end.

Test files:
- test_rpc_tools.py: Balance, account, rent and transaction lookups
- test_program_tools.py: IDL, GPA filter, simulation, authority and CPI tools
- test_http_tools.py: Helius, verify.osec.io and Dune backed tools
- test_stdio.py / test_sse.py: Transport bridges
"""
