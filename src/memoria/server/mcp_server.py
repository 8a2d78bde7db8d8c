"""Memoria MCP Server -- stdio-based MCP server."""

import asyncio
import logging
import sys

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from memoria.config import MemoriaConfig
from memoria.server.handlers import HANDLERS
from memoria.server.tool_schemas import TOOL_SCHEMAS
from memoria.service import get_service, reset_service

logger = logging.getLogger("memoria.server")

server = Server("memoria")


@server.list_tools()
async def list_tools() -> list[Tool]:
    """Return all Memoria tools."""
    return [
        Tool(
            name=schema["name"],
            description=schema["description"],
            inputSchema=schema["inputSchema"],
        )
        for schema in TOOL_SCHEMAS
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Dispatch tool call to the appropriate handler."""
    handler = HANDLERS.get(name)
    if not handler:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]

    try:
        result = await handler(arguments or {})
        # Extract text from MCP response format
        content_list = result.get("content", [{}])
        text = content_list[0].get("text", str(result)) if content_list else str(result)
        return [TextContent(type="text", text=text)]
    except Exception as e:
        logger.error("Tool %s failed: %s", name, e)
        return [TextContent(type="text", text=f"Error in {name}: {e}")]


def configure_logging(config: MemoriaConfig) -> None:
    # stdout is the MCP channel
    logging.basicConfig(level=getattr(logging, config.log_level), stream=sys.stderr)


async def main():
    """Entry point for the Memoria MCP server."""
    config = MemoriaConfig.from_env()
    configure_logging(config)
    logger.info("Starting Memoria MCP server...")

    # Connect and create the schema before the first tool call
    await get_service()

    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )
    finally:
        await reset_service()


if __name__ == "__main__":
    asyncio.run(main())
