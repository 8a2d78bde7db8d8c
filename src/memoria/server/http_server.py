"""Memoria HTTP Server -- Streamable HTTP transport for the MCP server.

Wraps the stdio MCP server in a Starlette ASGI app using the MCP SDK's
StreamableHTTPSessionManager, for clients that cannot spawn a subprocess.
"""

import contextlib
import secrets
from collections.abc import AsyncIterator
from pathlib import Path

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route
from starlette.types import Receive, Scope, Send

from mcp.server.streamable_http_manager import StreamableHTTPSessionManager

from memoria.database import secure_create


def get_or_create_api_key(home: Path) -> str:
    """Load the API key from <home>/api_key, or generate one."""
    key_path = home / "api_key"
    if key_path.exists():
        return key_path.read_text().strip()
    key = secrets.token_urlsafe(32)
    secure_create(key_path)
    key_path.write_text(key + "\n")
    return key


def create_http_app(server, api_key: str | None = None) -> Starlette:
    """Create a Starlette ASGI app wrapping the MCP server.

    Args:
        server: The MCP Server instance from mcp_server.py.
        api_key: Optional API key for authentication. None disables auth.
    """
    session_manager = StreamableHTTPSessionManager(
        app=server,
        json_response=True,
        stateless=True,
    )

    async def mcp_asgi_app(scope: Scope, receive: Receive, send: Send) -> None:
        if api_key:
            request = Request(scope, receive)
            provided = request.headers.get("x-api-key") or request.query_params.get("api_key")
            if provided != api_key:
                response = JSONResponse({"error": "Unauthorized"}, status_code=401)
                await response(scope, receive, send)
                return
        await session_manager.handle_request(scope, receive, send)

    async def health(request: Request):
        return JSONResponse({"status": "ok", "server": "memoria"})

    async def server_card(request: Request):
        from memoria import __version__
        from memoria.server.tool_schemas import TOOL_SCHEMAS

        return JSONResponse({
            "name": "memoria",
            "version": __version__,
            "description": "Persistent conversation and code memory with relevance-ranked context",
            "transports": [
                {"type": "streamable-http", "url": "/mcp"},
                {"type": "stdio", "command": "memoria serve"},
            ],
            "tools_count": len(TOOL_SCHEMAS),
        })

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with session_manager.run():
            yield

    app = Starlette(
        routes=[
            Mount("/mcp", app=mcp_asgi_app),
            Route("/health", endpoint=health),
            Route("/.well-known/mcp.json", endpoint=server_card),
        ],
        lifespan=lifespan,
    )
    return app


async def run_http(host: str, port: int, api_key: str | None) -> None:
    """Start the service, build the HTTP app and run uvicorn."""
    import uvicorn

    from memoria.server.mcp_server import server
    from memoria.service import get_service, reset_service

    await get_service()
    app = create_http_app(server, api_key=api_key)
    config = uvicorn.Config(app, host=host, port=port, log_level="info")
    srv = uvicorn.Server(config)
    try:
        await srv.serve()
    finally:
        await reset_service()
