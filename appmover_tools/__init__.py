"""
MCP tools for Android App Mover.
"""
from .handlers import register_tools

__all__ = ["register_tools"]
