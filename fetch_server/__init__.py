"""MCP server exposing a single ``fetch`` tool."""

__version__ = "1.0.0"
