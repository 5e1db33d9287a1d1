"""zettelmem MCP Tool Schemas -- 5 tools following the Zettelkasten workflow.

Search, read, create and link map to the four workflow steps; the fifth
tool serves the methodology guide itself.
"""

from zettelmem.protocol import SECTION_GROUPS, SECTIONS

TOOL_SCHEMAS = [
    {
        "name": "zk_search_notes",
        "description": "STEP 1: Search existing notes semantically before any action. Find context and related knowledge using Mem0 vector search, with a local text-match fallback when Mem0 is unreachable.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search query (keywords from the user request)"},
            },
            "required": ["query"],
        },
    },
    {
        "name": "zk_get_note",
        "description": "STEP 2: Retrieve a specific note by ID when you have an exact reference. Mem0 primary with SQLite fallback; the local copy includes tags and links.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "Note ID"},
            },
            "required": ["id"],
        },
    },
    {
        "name": "zk_create_note",
        "description": "STEP 3: Create an atomic note with a clear title, concise content and relevant tags. Each idea = one note. Search first.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Descriptive note title"},
                "content": {"type": "string", "description": "Note content: one complete idea"},
                "tags": {"type": "array", "items": {"type": "string"}, "description": "Optional tags"},
            },
            "required": ["title", "content"],
        },
    },
    {
        "name": "zk_create_link",
        "description": "STEP 4: Create a bidirectional relationship between two notes. Types: extends/refines/contradicts/supports/relates/exemplifies. The target records the inverse (<type>_by).",
        "inputSchema": {
            "type": "object",
            "properties": {
                "from": {"type": "string", "description": "Source note ID"},
                "to": {"type": "string", "description": "Target note ID"},
                "type": {"type": "string", "description": "Link type, e.g. 'extends'"},
            },
            "required": ["from", "to", "type"],
        },
    },
    {
        "name": "zk_get_methodology",
        "description": "Get the Zettelkasten methodology and workflow explanation. Call once at the start of a session.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "section": {
                    "type": "string",
                    "enum": list(SECTIONS.keys()) + list(SECTION_GROUPS.keys()),
                    "description": "Optional section or group; omit for the full guide",
                },
            },
            "required": [],
        },
    },
]

# (params, methodology hint) per tool, for the compact listing at GET /mcp/spec.
_TOOL_HINTS = {
    "zk_search_notes": (
        ["query:string"],
        "Always start here. Extract keywords from user request and search for existing knowledge before proceeding.",
    ),
    "zk_get_note": (
        ["id:string"],
        "Use when you have a specific note ID from search results or links. Part of analysis phase.",
    ),
    "zk_create_note": (
        ["title:string", "content:string", "tags?:string[]"],
        "Only after searching. One atomic idea per note. Title must be descriptive. Content concise but complete.",
    ),
    "zk_create_link": (
        ["from:string", "to:string", "type:string"],
        "Always link new notes to existing ones. Use meaningful relationship types that explain the connection.",
    ),
    "zk_get_methodology": (
        ["section?:string"],
        "Read once per session to follow the search, analyze, create, link and respond loop.",
    ),
}

TOOL_SPEC = [
    {
        "name": schema["name"],
        "description": schema["description"],
        "params": _TOOL_HINTS[schema["name"]][0],
        "methodology": _TOOL_HINTS[schema["name"]][1],
    }
    for schema in TOOL_SCHEMAS
]
