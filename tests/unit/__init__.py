"""
Unit Tests for MCP Solana RPC

These tests exercise the registries, the JSON-RPC router and the IDL helpers in
isolation: tool dispatch and schema validation, resource resolution, prompt
rendering, envelope decoding and error mapping, discriminators and instruction
encoding.
"""
