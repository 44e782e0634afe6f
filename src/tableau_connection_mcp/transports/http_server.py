# Tableau Connection Manager MCP Server
# File: transports/http_server.py
# Version: v1

"""Streamable-HTTP entrypoint for the Tableau Connection Manager MCP server.

Behind the ``tableau-connection-mcp-http`` console command.  Binds to
TABLEAU_MCP_HOST / TABLEAU_MCP_PORT (default 127.0.0.1:8000).
"""

from __future__ import annotations

import logging

from ..config import TableauConfig
from .stdio_server import build_server


def main() -> None:
    """Entry point for an HTTP-based MCP server."""
    cfg = TableauConfig.from_env()
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    mcp = build_server(host=cfg.http_host, port=cfg.http_port)
    mcp.run(transport="streamable-http")


if __name__ == "__main__":
    main()
