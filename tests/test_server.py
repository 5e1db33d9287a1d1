"""zettelmem MCP Server tests -- schemas, handlers and rate limiting."""
import json

import pytest

from zettelmem.server.handlers import build_handlers, mcp_error, mcp_response
from zettelmem.server.mcp_server import RateLimiter, create_server
from zettelmem.server.tool_schemas import TOOL_SCHEMAS, TOOL_SPEC


# ============================================================================
# Schema / Registry Tests
# ============================================================================

def test_all_tools_have_handlers(service):
    """Every tool in TOOL_SCHEMAS should have a handler."""
    handlers = build_handlers(service)
    for schema in TOOL_SCHEMAS:
        assert schema["name"] in handlers, f"Missing handler for {schema['name']}"
    assert len(handlers) == len(TOOL_SCHEMAS) == 5


def test_tool_schemas_valid():
    """All tool schemas should have required fields."""
    for schema in TOOL_SCHEMAS:
        assert "name" in schema
        assert "description" in schema
        assert schema["inputSchema"]["type"] == "object"
        assert schema["name"].startswith("zk_")


def test_tool_spec_matches_schemas():
    assert [s["name"] for s in TOOL_SPEC] == [s["name"] for s in TOOL_SCHEMAS]
    for entry in TOOL_SPEC:
        assert entry["params"]
        assert entry["methodology"]


def test_create_server(service):
    server = create_server(service)
    assert server.name == "zettelmem"


def test_response_helpers():
    assert mcp_response("ok") == {"content": [{"type": "text", "text": "ok"}]}
    err = mcp_error("bad")
    assert err["isError"] is True
    assert err["content"][0]["text"] == "Error: bad"


def _payload(result):
    assert not result.get("isError"), result
    return json.loads(result["content"][0]["text"])


# ============================================================================
# Handlers
# ============================================================================

@pytest.mark.asyncio
async def test_create_get_search_flow(service):
    handlers = build_handlers(service)
    created = _payload(await handlers["zk_create_note"]({
        "title": "Atomic notes", "content": "One idea per note", "tags": ["zk"],
    }))
    assert created["title"] == "Atomic notes"
    assert created["tags"] == ["zk"]
    await service.sync.drain()

    got = _payload(await handlers["zk_get_note"]({"id": created["id"]}))
    assert got["content"] == "One idea per note"
    assert got["via"] == "remote"

    found = _payload(await handlers["zk_search_notes"]({"query": "idea"}))
    assert found["via"] == "remote"
    assert found["results"][0]["id"] == created["id"]


@pytest.mark.asyncio
async def test_get_note_durable_when_remote_down(service, remote):
    handlers = build_handlers(service)
    remote.mode = "fail"
    created = _payload(await handlers["zk_create_note"]({"title": "T", "content": "C"}))
    got = _payload(await handlers["zk_get_note"]({"id": created["id"]}))
    assert got == {"id": created["id"], "title": "T", "content": "C", "tags": [], "links": [], "via": "durable"}


@pytest.mark.asyncio
async def test_create_link_handler(service):
    handlers = build_handlers(service)
    a = _payload(await handlers["zk_create_note"]({"title": "X", "content": "Y"}))
    b = _payload(await handlers["zk_create_note"]({"title": "Z", "content": "W"}))

    result = _payload(await handlers["zk_create_link"]({"from": a["id"], "to": b["id"], "type": "extends"}))
    assert result == {"success": True, "from": a["id"], "to": b["id"], "type": "extends"}
    assert service.store.get(b["id"]).links[0].type == "extends_by"


@pytest.mark.asyncio
async def test_create_note_missing_fields(service):
    result = await build_handlers(service)["zk_create_note"]({"title": "only title"})
    assert result["isError"]
    assert "content" in result["content"][0]["text"]


@pytest.mark.asyncio
async def test_get_note_not_found(service):
    result = await build_handlers(service)["zk_get_note"]({"id": "unknown-id"})
    assert result["isError"]
    assert "unknown-id" in result["content"][0]["text"]


@pytest.mark.asyncio
async def test_link_to_missing_note(service):
    handlers = build_handlers(service)
    a = _payload(await handlers["zk_create_note"]({"title": "X", "content": "Y"}))
    result = await handlers["zk_create_link"]({"from": a["id"], "to": "ghost", "type": "extends"})
    assert result["isError"]


@pytest.mark.asyncio
async def test_search_empty_query(service):
    result = await build_handlers(service)["zk_search_notes"]({})
    assert result["isError"]


@pytest.mark.asyncio
async def test_unexpected_error_is_generic(service, monkeypatch):
    async def explode(query):
        raise RuntimeError("internal detail")

    monkeypatch.setattr(service, "search_notes", explode)
    result = await build_handlers(service)["zk_search_notes"]({"query": "q"})
    assert result["isError"]
    assert "internal detail" not in result["content"][0]["text"]


@pytest.mark.asyncio
async def test_methodology_handler(service):
    handlers = build_handlers(service)
    full = await handlers["zk_get_methodology"]({})
    assert "## Workflow" in full["content"][0]["text"]
    part = await handlers["zk_get_methodology"]({"section": "links"})
    assert "## Workflow" not in part["content"][0]["text"]


# ============================================================================
# Rate limiting
# ============================================================================

class _Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_rate_limiter_global():
    clock = _Clock()
    limiter = RateLimiter(global_limit=3, write_limit=0, clock=clock)
    assert [limiter.check("zk_search_notes") for _ in range(3)] == [None, None, None]
    assert "3 calls/min" in limiter.check("zk_search_notes")

    clock.now += 61
    assert limiter.check("zk_search_notes") is None


def test_rate_limiter_write_tier():
    clock = _Clock()
    limiter = RateLimiter(global_limit=100, write_limit=2, clock=clock)
    assert limiter.check("zk_create_note") is None
    assert limiter.check("zk_create_link") is None
    assert "write calls/min" in limiter.check("zk_create_note")
    # Reads are unaffected by the write tier
    assert limiter.check("zk_get_note") is None


def test_rate_limiter_disabled():
    limiter = RateLimiter(global_limit=0, write_limit=0)
    for _ in range(1000):
        assert limiter.check("zk_create_note") is None
