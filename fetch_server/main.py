"""
Main entry point for the fetch MCP server.

Standard ist stdio; streamable-http / sse über FETCH_SERVER_TRANSPORT
oder server.transport in der Config.
"""
from __future__ import annotations

import sys

from .config import load_settings
from .server import create_server


def main() -> None:
    """Start the fetch MCP server on the configured transport."""
    try:
        settings = load_settings()
        mcp = create_server(settings)
        mcp.run(transport=settings.transport)
    except KeyboardInterrupt:
        sys.exit(0)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
