# Tableau Connection Manager MCP Server
# File: transports/stdio_server.py
# Version: v1

"""STDIO entrypoint for the Tableau Connection Manager MCP server.

This is the script behind the ``tableau-connection-mcp`` console command.

It:

- configures logging on stderr (stdout carries the MCP protocol),
- creates a FastMCP server,
- registers the connection-manager tools, and
- runs the built-in stdio transport.
"""

from __future__ import annotations

import logging

from mcp.server.fastmcp import FastMCP

from ..config import TableauConfig
from ..tools import tasks

SERVER_NAME = "tableau-connection-mcp"


def build_server(**settings) -> FastMCP:
    """Create a FastMCP instance with every tool registered."""
    mcp = FastMCP(SERVER_NAME, **settings)
    tasks.register_tools(mcp)
    return mcp


def main() -> None:
    """Synchronous entrypoint for console_scripts."""
    cfg = TableauConfig.from_env()
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    mcp = build_server()

    # Let FastMCP handle stdio + event loop setup.
    mcp.run()


if __name__ == "__main__":
    main()
