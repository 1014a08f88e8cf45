"""
Test Package for MCP Solana RPC

This package contains the test suite for the MCP Solana RPC server. It covers the
tool, resource and prompt registries, JSON-RPC routing, both transports, the IDL
helpers, and the Solana tools themselves.

Test Structure:
- unit/: Registries, protocol routing and IDL helpers
- integration/: Tools against mocked collaborators, and the stdio/SSE transports
- conftest.py: Pytest fixtures and configuration for testing
"""

# Test package for mcp-solana-rpc
