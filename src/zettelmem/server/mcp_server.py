"""zettelmem MCP Server -- stdio-based MCP server over a NoteService."""

import asyncio
import atexit
import collections
import logging
import signal
import time
from typing import Callable, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from zettelmem.config import Settings, configure_logging, load_settings
from zettelmem.server.handlers import build_handlers
from zettelmem.server.tool_schemas import TOOL_SCHEMAS
from zettelmem.service import NoteService

logger = logging.getLogger("zettelmem.server")

SERVER_NAME = "zettelmem"

_WRITE_TOOLS = frozenset({"zk_create_note", "zk_create_link"})


# ---------------------------------------------------------------------------
# Rate limiting -- sliding-window counters
# ---------------------------------------------------------------------------


class RateLimiter:
    """Per-minute call limits: one for all tools, a tighter one for writes.

    A limit of 0 disables that tier.
    """

    def __init__(
        self,
        global_limit: int = 300,
        write_limit: int = 60,
        window_s: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.global_limit = global_limit
        self.write_limit = write_limit
        self.window_s = window_s
        self._clock = clock
        self._global: collections.deque = collections.deque()
        self._writes: collections.deque = collections.deque()

    @staticmethod
    def _prune(stamps: collections.deque, cutoff: float) -> None:
        while stamps and stamps[0] < cutoff:
            stamps.popleft()

    def check(self, tool_name: str) -> Optional[str]:
        """Return an error message if a limit is exceeded, else None."""
        now = self._clock()
        cutoff = now - self.window_s

        if self.global_limit:
            self._prune(self._global, cutoff)
            if len(self._global) >= self.global_limit:
                return f"Rate limit exceeded: {self.global_limit} calls/min globally. Try again shortly."

        if self.write_limit and tool_name in _WRITE_TOOLS:
            self._prune(self._writes, cutoff)
            if len(self._writes) >= self.write_limit:
                return f"Rate limit exceeded: {self.write_limit} write calls/min. Try again shortly."
            self._writes.append(now)

        if self.global_limit:
            self._global.append(now)
        return None


def create_server(
    service: NoteService,
    settings: Optional[Settings] = None,
    limiter: Optional[RateLimiter] = None,
) -> Server:
    """Build an MCP Server whose tools call into service.

    Pass limiter to share call budgets with another transport.
    """
    settings = settings or service.settings
    handlers = build_handlers(service)
    if limiter is None:
        limiter = RateLimiter(settings.rate_limit_global, settings.rate_limit_write)
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """Return all zettelmem tools."""
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
        rate_err = limiter.check(name)
        if rate_err:
            return [TextContent(type="text", text=rate_err)]

        handler = handlers.get(name)
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

    return server


async def _run_until_signalled(coro) -> None:
    """Run coro until it finishes or the process gets SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            pass  # Windows / non-main thread

    main_task = asyncio.ensure_future(coro)
    stop_task = asyncio.ensure_future(stop.wait())
    try:
        done, _ = await asyncio.wait({main_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if stop_task in done:
            logger.info("Shutdown signal received")
    finally:
        for task in (main_task, stop_task):
            task.cancel()
        await asyncio.gather(main_task, stop_task, return_exceptions=True)
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass
    if main_task.done() and not main_task.cancelled() and main_task.exception():
        raise main_task.exception()


async def main(settings: Optional[Settings] = None):
    """Entry point for the zettelmem MCP server."""
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    logger.info("Starting zettelmem MCP server...")

    service = NoteService.from_settings(settings)
    # Last-resort close if the loop dies before the finally below runs.
    atexit.register(service.store.close)

    server = create_server(service, settings)
    service.start()

    async def _serve():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options(),
            )

    try:
        await _run_until_signalled(_serve())
    finally:
        await service.aclose()


if __name__ == "__main__":
    asyncio.run(main())
