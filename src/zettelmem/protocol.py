"""
zettelmem methodology -- the Zettelkasten workflow served to agents.

Two renderings of the same guide:
- get_methodology(section) assembles Markdown text for the
  zk_get_methodology MCP tool, whole or one section at a time.
- METHODOLOGY is the structured form returned by GET /mcp/methodology.
"""

import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger("zettelmem.protocol")

METHODOLOGY_VERSION = "1.0"

LINK_TYPES = ("extends", "refines", "contradicts", "supports", "relates", "exemplifies")

# ---------------------------------------------------------------------------
# Sections -- each is a (title, content) pair
# ---------------------------------------------------------------------------

SECTIONS: Dict[str, Dict[str, str]] = {
    "principles": {
        "title": "Principles",
        "content": """\
- **Atomicity**: each note holds one clear, complete idea under a descriptive title
- **Connectivity**: notes are joined by bidirectional typed links
- **Discoverability**: search semantically before creating anything
- **Emergence**: knowledge comes out of the network, not any single note""",
    },
    "workflow": {
        "title": "Workflow",
        "content": """\
1. **Search**: `zk_search_notes(query)` with keywords from the request. Never answer without searching first.
2. **Analyze**: `zk_get_note(id)` for notes you need in full (ids come from search results or links).
3. **Create**: `zk_create_note(title, content, tags)` for new atomic knowledge. One idea per note.
4. **Link**: `zk_create_link(from, to, type)` to connect new notes to existing ones.
5. **Respond**: reference the note ids you used and created.""",
    },
    "links": {
        "title": "Link Types",
        "content": """\
Every link is stored on both notes. `zk_create_link(a, b, "extends")` records
`a -extends-> b` on a and `b -extends_by-> a` on b.

| Type | Use when the new note... |
|------|--------------------------|
| `extends` | builds on the target |
| `refines` | narrows or corrects the target |
| `contradicts` | disagrees with the target |
| `supports` | gives evidence for the target |
| `relates` | is connected without a stronger relation |
| `exemplifies` | is a concrete instance of the target |""",
    },
    "practices": {
        "title": "Best Practices",
        "content": """\
- Search before every action using semantic keywords
- Use meaningful, descriptive titles
- Tag consistently for discoverability
- Document inconsistencies as new notes instead of editing old ones
- Reference note ids in final responses""",
    },
    "storage": {
        "title": "Storage Behaviour",
        "content": """\
- Notes are written to the local SQLite store first, then synced to Mem0 in the background
- Search uses Mem0 when reachable; otherwise a case-insensitive text match over local notes (`via: "durable"`)
- A note read back from Mem0 carries no tags or links; read it again when offline to see them
- Notes that fail to sync are retried automatically every few seconds""",
    },
    "example": {
        "title": "Example",
        "content": """\
Request: "How to implement authentication in Next.js?"
1. `zk_search_notes(query="Next.js authentication")`
2. Read the auth pattern notes that came back
3. `zk_create_note` with the new implementation approach
4. `zk_create_link` from it to the existing auth and Next.js notes
5. Answer, citing the note network used""",
    },
}

SECTION_GROUPS: Dict[str, List[str]] = {
    "quick": ["workflow", "links"],
    "full": list(SECTIONS.keys()),
}

# Structured form for HTTP clients.
METHODOLOGY: Dict[str, Any] = {
    "name": "Zettelkasten Methodology with Mem0",
    "version": METHODOLOGY_VERSION,
    "description": "Semantic memory management following Zettelkasten principles",
    "principles": {
        "atomicity": "Each note contains one clear, complete idea with descriptive title",
        "connectivity": "All notes are connected through bidirectional semantic links",
        "discoverability": "Use semantic search (Mem0) to find related knowledge before creating",
        "emergence": "Knowledge emerges from the network of connected atomic notes",
    },
    "workflow": {
        "1_search": {
            "action": "zk_search_notes",
            "purpose": "Find existing context and related knowledge",
            "rule": "NEVER respond without searching first",
        },
        "2_analyze": {
            "action": "zk_get_note (if needed)",
            "purpose": "Retrieve specific notes to understand current knowledge state",
            "rule": "Plan response based on retrieved notes",
        },
        "3_create": {
            "action": "zk_create_note",
            "purpose": "Add new atomic knowledge discoveries",
            "rule": "One idea per note, clear title, concise content",
        },
        "4_link": {
            "action": "zk_create_link",
            "purpose": "Connect new knowledge to existing network",
            "rule": "Always create bidirectional semantic relationships",
        },
        "5_respond": {
            "action": "Final response to user",
            "purpose": "Reference notes used and created",
            "rule": "Make knowledge graph explicit in communication",
        },
    },
    "linkTypes": [name for t in LINK_TYPES for name in (t, t + "_by")],
    "bestPractices": [
        "Search before every action using semantic keywords",
        "Create atomic notes with single, clear concepts",
        "Use meaningful, descriptive titles",
        "Tag consistently for discoverability",
        "Link bidirectionally with semantic relationship types",
        "Prefer Mem0 semantic search over SQLite text search",
        "Document inconsistencies as new notes",
        "Reference note IDs in final responses",
    ],
}


def get_methodology(section: Optional[str] = None) -> str:
    """Assemble the methodology guide.

    Args:
        section: A section key, a group name ("quick", "full"), or None for
            the full guide. Unknown names fall back to the full guide.

    Returns:
        Markdown text ready for agent consumption.
    """
    if section and section in SECTIONS:
        selected = [section]
    elif section and section in SECTION_GROUPS:
        selected = SECTION_GROUPS[section]
    else:
        if section:
            logger.debug("Unknown methodology section %r, returning full guide", section)
        selected = SECTION_GROUPS["full"]

    lines = [f"# Zettelkasten Methodology v{METHODOLOGY_VERSION}\n"]
    for key in selected:
        sec = SECTIONS[key]
        lines.append(f"## {sec['title']}")
        lines.append(sec["content"])
        lines.append("")
    return "\n".join(lines)


def list_sections() -> List[Dict[str, str]]:
    """List all methodology sections with titles."""
    return [{"key": key, "title": sec["title"]} for key, sec in SECTIONS.items()]
