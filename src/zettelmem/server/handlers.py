"""
zettelmem MCP Handlers -- Maps tool names to async handler functions.

Each handler delegates to a NoteService and returns MCP-compatible response
dicts whose text is JSON. Caller mistakes (bad input, unknown note id) come
back as error responses; anything else is logged and reported generically.
"""

import json
import logging
from typing import Any, Awaitable, Callable, Dict

from zettelmem.errors import NotFound, ValidationError
from zettelmem.protocol import get_methodology

logger = logging.getLogger("zettelmem.server.handlers")

Handler = Callable[[dict], Awaitable[dict]]


# ============================================================================
# Response Helpers
# ============================================================================


def mcp_response(text: str) -> dict:
    """Build a successful MCP response."""
    return {"content": [{"type": "text", "text": str(text)}]}


def mcp_error(text: str) -> dict:
    """Build an error MCP response."""
    return {"content": [{"type": "text", "text": f"Error: {text}"}], "isError": True}


def mcp_json(payload: Any) -> dict:
    return mcp_response(json.dumps(payload, ensure_ascii=False, indent=2))


def _guarded(tool: str, fn: Handler) -> Handler:
    """Turn service exceptions into MCP error responses."""

    async def handler(arguments: dict) -> dict:
        try:
            return await fn(arguments or {})
        except ValidationError as e:
            return mcp_error(str(e))
        except NotFound as e:
            return mcp_error(str(e))
        except Exception as e:
            logger.error("%s failed: %s", tool, e)
            return mcp_error(f"{tool} failed")

    handler.__name__ = f"handle_{tool}"
    return handler


# ============================================================================
# Handlers
# ============================================================================


def build_handlers(service) -> Dict[str, Handler]:
    """Bind the tool handlers to one NoteService."""

    async def handle_zk_search_notes(arguments: dict) -> dict:
        response = await service.search_notes(arguments.get("query"))
        return mcp_json(response.to_dict())

    async def handle_zk_get_note(arguments: dict) -> dict:
        view = await service.get_note(arguments.get("id"))
        return mcp_json(view.to_dict())

    async def handle_zk_create_note(arguments: dict) -> dict:
        note = await service.create_note(
            arguments.get("title"),
            arguments.get("content"),
            arguments.get("tags"),
        )
        return mcp_json({"id": note.id, "title": note.title, "tags": list(note.tags)})

    async def handle_zk_create_link(arguments: dict) -> dict:
        forward, _ = await service.create_link(
            arguments.get("from"), arguments.get("to"), arguments.get("type")
        )
        return mcp_json({"success": True, **forward.to_dict()})

    async def handle_zk_get_methodology(arguments: dict) -> dict:
        return mcp_response(get_methodology(arguments.get("section")))

    raw = {
        "zk_search_notes": handle_zk_search_notes,
        "zk_get_note": handle_zk_get_note,
        "zk_create_note": handle_zk_create_note,
        "zk_create_link": handle_zk_create_link,
        "zk_get_methodology": handle_zk_get_methodology,
    }
    return {name: _guarded(name, fn) for name, fn in raw.items()}
