"""
Android App Mover - MCP Server
Entry point for the MCP server.
"""
import logging

from mcp.server.fastmcp import FastMCP

# MCP talks over stdout, so logs go to stderr
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)

# Create MCP server instance
mcp = FastMCP("AndroidAppMover")

# Register tools
from appmover_tools import register_tools
register_tools(mcp)


def main():
    """Main entry point for script execution."""
    mcp.run()


if __name__ == "__main__":
    main()
