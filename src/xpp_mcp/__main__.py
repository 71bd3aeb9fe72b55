"""Run the XPP MCP server: ``python -m xpp_mcp``."""

from xpp_mcp.mcp.server import main

if __name__ == "__main__":
    main()
