"""zettelmem CLI -- note commands, retry flush, status, and server management."""

import argparse
import asyncio
import json
import sys

from zettelmem.config import configure_logging, load_settings
from zettelmem.errors import NotFound, ValidationError


def _run(settings, op):
    """Open a NoteService over settings, await op(service), always close it.

    Caller errors are printed and exit with status 1.
    """
    from zettelmem.service import NoteService

    async def runner():
        async with NoteService.from_settings(settings) as service:
            return await op(service)

    try:
        return asyncio.run(runner())
    except (ValidationError, NotFound) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


# ============================================================================
# Note commands
# ============================================================================


def cmd_create(args, settings):
    """Create a note; the remote sync finishes (or queues) before exit."""
    content = " ".join(args.content)
    tags = [t.strip() for t in args.tags.split(",") if t.strip()] if args.tags else None

    async def op(service):
        note = await service.create_note(args.title, content, tags)
        await service.sync.drain()
        return note

    note = _run(settings, op)
    if args.json:
        _print_json(note.to_dict())
    else:
        print(note.id)


def cmd_get(args, settings):
    """Show one note by id."""
    view = _run(settings, lambda service: service.get_note(args.id))
    if args.json:
        _print_json(view.to_dict())
        return
    print(f"ID:      {view.id}")
    if view.title is not None:
        print(f"Title:   {view.title}")
    if view.tags:
        print(f"Tags:    {', '.join(view.tags)}")
    print(f"Via:     {view.via}")
    print()
    print(view.content)
    if view.links:
        print()
        for link in view.links:
            print(f"  -[{link.type}]-> {link.target}")


def cmd_search(args, settings):
    """Search notes (remote first, local text match as fallback)."""
    query = " ".join(args.query_text)
    if not query.strip():
        print("Usage: zettelmem search <search text>", file=sys.stderr)
        sys.exit(1)

    response = _run(settings, lambda service: service.search_notes(query))
    if args.json:
        _print_json(response.to_dict())
        return
    if not response.results:
        print("No results found")
        return
    print(f"{len(response.results)} result(s) via {response.via}\n")
    for hit in response.results:
        heading = f"{hit.id}  {hit.title}" if hit.title else hit.id
        print(heading)
        print(f"  {hit.content[:200]}")


def cmd_link(args, settings):
    """Link two notes; the target records the inverse type."""
    forward, inverse = _run(settings, lambda service: service.create_link(args.source, args.target, args.type))
    print(f"{forward.source} -[{forward.type}]-> {forward.target}")
    print(f"{inverse.source} -[{inverse.type}]-> {inverse.target}")


def cmd_flush(args, settings):
    """Re-send every note waiting in the retry queue."""
    report = _run(settings, lambda service: service.flush())
    if args.json:
        _print_json(report.to_dict())
    else:
        print(f"Attempted: {report.attempted}  Synced: {report.synced}  Failed: {report.failed}")


def cmd_status(args, settings):
    """Show note count, retry queue size and backends."""
    status = _run(settings, lambda service: service.status())
    if args.json:
        _print_json(status)
        return
    print(f"Database:        {status['db_path']}")
    print(f"Notes:           {status['notes']}")
    print(f"Pending retries: {status['pending_retries']}")
    print(f"Remote index:    {status['remote']}")


# ============================================================================
# Server commands
# ============================================================================


def cmd_serve(args, settings):
    """Run the zettelmem MCP server (stdio mode)."""
    from zettelmem.server.mcp_server import main

    asyncio.run(main(settings))


def cmd_http(args, settings):
    """Run the HTTP server (REST routes + MCP Streamable HTTP)."""
    from zettelmem.server.http_server import get_or_create_api_key, run_http

    if args.host:
        settings.http_host = args.host
    if args.port:
        settings.http_port = args.port

    api_key = None
    if not args.no_auth:
        api_key = get_or_create_api_key(settings.home)
        print(f"API key: {settings.home / 'api_key'} (send as X-API-Key)", file=sys.stderr)
    print(f"Serving on http://{settings.http_host}:{settings.http_port} (MCP at /mcp)", file=sys.stderr)
    asyncio.run(run_http(settings, api_key))


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="zettelmem",
        description="zettelmem -- Zettelkasten notes over Mem0 with a local SQLite store",
    )
    parser.add_argument("--env-file", help="Load settings from this .env file")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # --- Note commands ---
    create_parser = subparsers.add_parser("create", help="Create a note")
    create_parser.add_argument("title", help="Note title")
    create_parser.add_argument("content", nargs="+", help="Note content")
    create_parser.add_argument("--tags", help="Comma-separated tags")
    create_parser.add_argument("--json", action="store_true", help="Output as JSON")

    get_parser = subparsers.add_parser("get", help="Show a note by id")
    get_parser.add_argument("id", help="Note id")
    get_parser.add_argument("--json", action="store_true", help="Output as JSON")

    search_parser = subparsers.add_parser("search", help="Search notes")
    search_parser.add_argument("query_text", nargs="+", help="Search text")
    search_parser.add_argument("--json", action="store_true", help="Output as JSON")

    link_parser = subparsers.add_parser("link", help="Link two notes (bidirectional)")
    link_parser.add_argument("source", help="Source note id")
    link_parser.add_argument("target", help="Target note id")
    link_parser.add_argument("type", help="Link type, e.g. extends")

    flush_parser = subparsers.add_parser("flush", help="Retry queued remote syncs now")
    flush_parser.add_argument("--json", action="store_true", help="Output as JSON")

    status_parser = subparsers.add_parser("status", help="Show note count and retry queue size")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # --- Server commands ---
    subparsers.add_parser("serve", help="Run MCP server (stdio mode)")
    http_parser = subparsers.add_parser("http", help="Run HTTP server (REST + MCP Streamable HTTP)")
    http_parser.add_argument("--host", help="Bind address (default: ZETTEL_HTTP_HOST or 127.0.0.1)")
    http_parser.add_argument("--port", type=int, help="Port (default: ZETTEL_HTTP_PORT or 8080)")
    http_parser.add_argument("--no-auth", action="store_true", help="Disable API key authentication")

    args = parser.parse_args(argv)

    commands = {
        "create": cmd_create,
        "get": cmd_get,
        "search": cmd_search,
        "link": cmd_link,
        "flush": cmd_flush,
        "status": cmd_status,
        "serve": cmd_serve,
        "http": cmd_http,
    }

    if args.command not in commands:
        parser.print_help()
        return

    settings = load_settings(args.env_file)
    if args.command != "serve":
        configure_logging(settings.log_level)
    commands[args.command](args, settings)


if __name__ == "__main__":
    main()
