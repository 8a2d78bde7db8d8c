"""Memoria MCP Tool Schemas -- conversation, record, retrieval and vector tools."""

_IMPORTANCE = {
    "type": "string",
    "enum": ["low", "medium", "high", "critical"],
    "description": "Importance level (low, medium, high, critical)",
}

_METADATA = {"type": "object", "description": "Optional free-form metadata"}

TOOL_SCHEMAS = [
    {
        "name": "generateBanner",
        "description": "Generates a banner with memory system status, total memory count and time of the latest memory.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "checkHealth",
        "description": "Checks the health of the memory system and its database connection.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "initConversation",
        "description": "Initializes a conversation: stores the user message, generates the banner and retrieves context relevant to the message in one call.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "Content of the user message"},
                "importance": {**_IMPORTANCE, "default": "low"},
                "metadata": _METADATA,
            },
            "required": ["content"],
        },
    },
    {
        "name": "endConversation",
        "description": "Ends a conversation: stores the assistant message, records a milestone and logs a completion episode in one call.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "Content of the assistant's final message"},
                "milestone_title": {"type": "string", "description": "Title of the milestone to record"},
                "milestone_description": {"type": "string", "description": "Description of what was accomplished"},
                "importance": {**_IMPORTANCE, "default": "medium"},
                "metadata": _METADATA,
            },
            "required": ["content", "milestone_title", "milestone_description"],
        },
    },
    {
        "name": "storeUserMessage",
        "description": "Stores a user message in short-term memory.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "Content of the message"},
                "importance": {**_IMPORTANCE, "default": "low"},
                "metadata": _METADATA,
            },
            "required": ["content"],
        },
    },
    {
        "name": "storeAssistantMessage",
        "description": "Stores an assistant message in short-term memory. Code blocks in the message are fingerprinted for search.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "content": {"type": "string", "description": "Content of the message"},
                "importance": {**_IMPORTANCE, "default": "low"},
                "metadata": _METADATA,
            },
            "required": ["content"],
        },
    },
    {
        "name": "trackActiveFile",
        "description": "Tracks a file the user is working on. Opened or edited files are indexed in the background.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "filename": {"type": "string", "description": "Path to the file being tracked"},
                "action": {"type": "string", "description": "Action performed on the file (open, edit, close, ...)"},
                "metadata": _METADATA,
            },
            "required": ["filename", "action"],
        },
    },
    {
        "name": "getRecentMessages",
        "description": "Retrieves recent messages from short-term memory, newest first.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "limit": {"type": "integer", "default": 10, "description": "Maximum number of messages"},
                "importance": {**_IMPORTANCE, "description": "Only messages with this importance"},
            },
        },
    },
    {
        "name": "getActiveFiles",
        "description": "Retrieves recently active files, most recently accessed first.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "limit": {"type": "integer", "default": 10, "description": "Maximum number of files"},
            },
        },
    },
    {
        "name": "storeMilestone",
        "description": "Stores a project milestone in long-term memory.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Title of the milestone"},
                "description": {"type": "string", "description": "Description of the milestone"},
                "importance": {**_IMPORTANCE, "default": "medium"},
                "metadata": _METADATA,
            },
            "required": ["title", "description"],
        },
    },
    {
        "name": "storeDecision",
        "description": "Stores a project decision in long-term memory.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Title of the decision"},
                "content": {"type": "string", "description": "Content of the decision"},
                "reasoning": {"type": "string", "description": "Reasoning behind the decision"},
                "importance": {**_IMPORTANCE, "default": "medium"},
                "metadata": _METADATA,
            },
            "required": ["title", "content"],
        },
    },
    {
        "name": "storeRequirement",
        "description": "Stores a project requirement in long-term memory.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Title of the requirement"},
                "content": {"type": "string", "description": "Content of the requirement"},
                "importance": {**_IMPORTANCE, "default": "medium"},
                "metadata": _METADATA,
            },
            "required": ["title", "content"],
        },
    },
    {
        "name": "recordEpisode",
        "description": "Records an action in the episodic memory log.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "actor": {"type": "string", "description": "Actor performing the action (user, assistant, system)"},
                "action": {"type": "string", "description": "Type of action performed"},
                "content": {"type": "string", "description": "Content or details of the action"},
                "importance": {**_IMPORTANCE, "default": "low"},
                "context": {"type": "string", "description": "Context for the episode"},
            },
            "required": ["actor", "action", "content"],
        },
    },
    {
        "name": "getRecentEpisodes",
        "description": "Retrieves recent episodes, newest first.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "limit": {"type": "integer", "default": 10, "description": "Maximum number of episodes"},
                "context": {"type": "string", "description": "Only episodes with this context"},
            },
        },
    },
    {
        "name": "getComprehensiveContext",
        "description": "Retrieves a ranked context snapshot across short-term, long-term, episodic and (with a query) semantic memory.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Optional query used to rank items by relevance"},
            },
        },
    },
    {
        "name": "getMemoryStats",
        "description": "Retrieves record and fingerprint counts for the memory system.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "manageVector",
        "description": "Stores, searches, updates or deletes fingerprint vectors.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "operation": {
                    "type": "string",
                    "enum": ["store", "search", "update", "delete"],
                    "description": "Operation to perform",
                },
                "contentId": {"type": "integer", "description": "ID of the content the vector represents (store)"},
                "contentType": {"type": "string", "description": "Content type tag (store; optional filter for search)"},
                "vector": {
                    "type": "array",
                    "items": {"type": "number"},
                    "description": "Vector data (store, update) or query vector (search)",
                },
                "metadata": _METADATA,
                "vectorId": {"type": "integer", "description": "ID of the vector to update or delete"},
                "limit": {"type": "integer", "default": 10, "description": "Maximum number of search results"},
                "threshold": {"type": "number", "description": "Minimum similarity for search results (default 0.7)"},
            },
            "required": ["operation"],
        },
    },
    {
        "name": "runMaintenance",
        "description": "Removes orphaned and duplicate fingerprints and optionally rebuilds the vector index.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "forceRebuild": {"type": "boolean", "default": False},
                "cleanOrphans": {"type": "boolean", "default": True},
                "optimizeStorage": {"type": "boolean", "default": True},
            },
        },
    },
]
