"""
MCP Server module for XPP MCP.

This module provides the Model Context Protocol server implementation
for X++ metadata search and code-pattern analysis.

Exports:
    - mcp: FastMCP server instance
    - main: Entry point for running the MCP server
    - get_state: Get MCP session state
    - reset_state: Reset MCP session state (for testing)
    - MCPSessionState: Session state dataclass
"""

from xpp_mcp.mcp.server import mcp, main
from xpp_mcp.mcp.state import get_state, reset_state, MCPSessionState

__all__ = [
    "mcp",
    "main",
    "get_state",
    "reset_state",
    "MCPSessionState",
]
