"""
MCP Solana RPC Package

This package exposes Solana blockchain read and simulate operations as tools
of an MCP (Model Context Protocol) server, so an AI agent can query balances,
transactions and program IDLs, and build and simulate instructions through a
uniform tool-calling interface.

Main components:
- registry.py: Tool registry with schema validation and dispatch
- resources.py / prompts.py: Resource and prompt registries
- server.py: JSON-RPC routing between transports and the registries
- stdio.py / sse.py: stdio and server-sent-events transports
- tools.py / idl.py / dune.py: Solana RPC, Anchor IDL and Dune Analytics tools
"""

# MCP Solana RPC
