"""
Readwise MCP HTTP server package.

This package exposes Readwise highlight search to MCP clients through a
JSON-RPC surface over HTTP, with a streaming variant. See DESIGN.md for full
details.
"""

__all__ = ["config"]
