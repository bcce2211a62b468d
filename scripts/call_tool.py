from __future__ import annotations

import asyncio
import json
import sys
from typing import Any, Dict

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client


SERVER_PARAMS = StdioServerParameters(command=sys.executable, args=["-m", "fetch_server"])


async def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python scripts/call_tool.py '<json-args>' [tool_name]")
        print("""Example: python scripts/call_tool.py '{"url": "https://example.com"}'""")
        raise SystemExit(1)

    raw_args = sys.argv[1]
    tool_name = sys.argv[2] if len(sys.argv) > 2 else "fetch"

    try:
        params: Dict[str, Any] = json.loads(raw_args)
    except ValueError as exc:
        print("Failed to parse JSON arguments")
        print(repr(exc))
        raise SystemExit(1)

    async with stdio_client(SERVER_PARAMS) as (read_stream, write_stream):
        async with ClientSession(read_stream, write_stream) as session:
            await session.initialize()
            result = await session.call_tool(tool_name, params)
            if result.isError:
                print("Tool call failed:")
            for item in result.content:
                if item.type == "text":
                    print(item.text)
                elif item.type == "image":
                    print(f"<image {item.mimeType}, {len(item.data)} base64 chars>")
                else:
                    print(item)


if __name__ == "__main__":
    asyncio.run(main())
