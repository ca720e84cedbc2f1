"""hypergraph_reasoning MCP server: exposes graph retrieval as tools for AI agents."""

from hypergraph_reasoning.mcp.server import mcp, run_server

__all__ = ["mcp", "run_server"]
