"""Serving layer for docforge: query engine, MCP JSON-RPC server and HTTP app."""

from .query_engine import QueryEngine, SearchResult, GetResult, Listing
from .mcp_server import MCPServer

__all__ = [
    'QueryEngine',
    'SearchResult',
    'GetResult',
    'Listing',
    'MCPServer'
]
