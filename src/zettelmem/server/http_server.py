"""zettelmem HTTP Server -- REST routes plus Streamable HTTP transport for MCP.

Serves the same NoteService two ways:
- Plain JSON routes under /mcp/zk_* for HTTP clients
- The MCP server over the SDK's StreamableHTTPSessionManager at /mcp

Dependencies (starlette, uvicorn) are already transitive deps of mcp.
"""

import contextlib
import json
import logging
import secrets
import time
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Callable, Optional

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Mount, Route
from starlette.types import Receive, Scope, Send

from mcp.server.streamable_http_manager import StreamableHTTPSessionManager

from zettelmem.errors import NotFound, ValidationError
from zettelmem.protocol import METHODOLOGY
from zettelmem.server.mcp_server import RateLimiter, create_server
from zettelmem.server.tool_schemas import TOOL_SPEC

logger = logging.getLogger("zettelmem.server.http")

API_KEY_FILENAME = "api_key"

Endpoint = Callable[[Request], Awaitable[Response]]


def get_or_create_api_key(home: Path) -> str:
    """Load the API key from <home>/api_key, or generate one."""
    key_path = Path(home) / API_KEY_FILENAME
    if key_path.exists():
        return key_path.read_text().strip()
    key = secrets.token_urlsafe(32)
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_text(key + "\n")
    key_path.chmod(0o600)
    return key


def _provided_key(request: Request) -> Optional[str]:
    return request.headers.get("x-api-key") or request.query_params.get("api_key")


def _unauthorized() -> JSONResponse:
    return JSONResponse({"error": "Unauthorized"}, status_code=401)


async def _json_body(request: Request) -> dict:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError("Request body must be JSON") from e
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def create_http_app(service, server=None, api_key: Optional[str] = None) -> Starlette:
    """Create a Starlette ASGI app over a NoteService.

    Args:
        service: The NoteService backing every route.
        server: MCP Server for /mcp. Built from service when omitted.
        api_key: Optional API key for authentication. None disables auth.
    """
    settings = service.settings
    limiter = RateLimiter(settings.rate_limit_global, settings.rate_limit_write)
    if server is None:
        server = create_server(service, settings, limiter=limiter)

    session_manager = StreamableHTTPSessionManager(
        app=server,
        json_response=True,
        stateless=True,
    )
    started = time.monotonic()

    def protected(tool: str) -> Callable[[Endpoint], Endpoint]:
        """Check the API key and the rate limit for tool, then map service
        errors to HTTP status codes."""

        def decorate(endpoint: Endpoint) -> Endpoint:
            async def wrapper(request: Request) -> Response:
                if api_key and _provided_key(request) != api_key:
                    return _unauthorized()
                rate_err = limiter.check(tool)
                if rate_err:
                    return JSONResponse({"error": rate_err}, status_code=429)
                try:
                    return await endpoint(request)
                except ValidationError as e:
                    return JSONResponse({"error": str(e)}, status_code=400)
                except NotFound as e:
                    return JSONResponse({"error": str(e)}, status_code=404)
                except Exception as e:
                    logger.error("%s %s failed: %s", request.method, request.url.path, e)
                    return JSONResponse({"error": "Internal server error"}, status_code=500)

            wrapper.__name__ = endpoint.__name__
            return wrapper

        return decorate

    async def mcp_asgi_app(scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI app for the /mcp endpoint -- delegates to StreamableHTTPSessionManager."""
        if api_key:
            request = Request(scope, receive)
            if _provided_key(request) != api_key:
                await _unauthorized()(scope, receive, send)
                return
        await session_manager.handle_request(scope, receive, send)

    async def health(request: Request):
        from zettelmem import __version__

        pending = None
        try:
            pending = (await service.status())["pending_retries"]
        except Exception as e:
            logger.warning("Health check could not read the retry queue: %s", e)
        return JSONResponse({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - started, 3),
            "version": __version__,
            "pending_retries": pending,
        })

    @protected("spec")
    async def tool_spec(request: Request):
        return JSONResponse(TOOL_SPEC)

    @protected("zk_get_methodology")
    async def methodology(request: Request):
        return JSONResponse(METHODOLOGY)

    @protected("zk_create_note")
    async def create_note(request: Request):
        body = await _json_body(request)
        note = await service.create_note(body.get("title"), body.get("content"), body.get("tags"))
        return JSONResponse({"id": note.id, "title": note.title, "tags": list(note.tags)})

    @protected("zk_get_note")
    async def get_note(request: Request):
        view = await service.get_note(request.query_params.get("id", ""))
        return JSONResponse(view.to_dict())

    @protected("zk_create_link")
    async def create_link(request: Request):
        body = await _json_body(request)
        forward, _ = await service.create_link(body.get("from"), body.get("to"), body.get("type"))
        return JSONResponse({"success": True, **forward.to_dict()})

    @protected("zk_search_notes")
    async def search_notes(request: Request):
        body = await _json_body(request)
        response = await service.search_notes(body.get("query"))
        return JSONResponse(response.to_dict())

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with session_manager.run():
            service.start()
            try:
                yield
            finally:
                await service.sync.stop()

    # REST routes must precede the /mcp mount, which would otherwise swallow them.
    app = Starlette(
        routes=[
            Route("/health", endpoint=health),
            Route("/mcp/spec", endpoint=tool_spec),
            Route("/mcp/methodology", endpoint=methodology),
            Route("/mcp/zk_create_note", endpoint=create_note, methods=["POST"]),
            Route("/mcp/zk_get_note", endpoint=get_note, methods=["GET"]),
            Route("/mcp/zk_create_link", endpoint=create_link, methods=["POST"]),
            Route("/mcp/zk_search_notes", endpoint=search_notes, methods=["POST"]),
            Mount("/mcp", app=mcp_asgi_app),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=settings.cors_origins,
                allow_methods=["GET", "POST", "DELETE"],
                allow_headers=["X-API-Key", "Content-Type", "Authorization", "Mcp-Session-Id", "Mcp-Protocol-Version"],
                expose_headers=["Mcp-Session-Id"],
            ),
        ],
        lifespan=lifespan,
    )
    return app


async def run_http(settings, api_key: Optional[str]) -> None:
    """Open the service, create the HTTP app, run uvicorn."""
    import uvicorn

    from zettelmem.service import NoteService

    service = NoteService.from_settings(settings)
    try:
        app = create_http_app(service, api_key=api_key)
        config = uvicorn.Config(
            app,
            host=settings.http_host,
            port=settings.http_port,
            log_level=settings.log_level.lower(),
        )
        srv = uvicorn.Server(config)
        await srv.serve()
    finally:
        await service.aclose()
