# Tableau Connection Manager MCP Server
# File: tools/__init__.py
# Version: v1

"""MCP tool layer: library-style async tasks plus their registration."""

from __future__ import annotations

from .tasks import register_tools

__all__ = ["register_tools"]
