# mcp_bridge/core/constants.py

INTERNAL_ENDPOINT_SCHEME = "internal://"

DEFAULT_TOOL_VERSION = "1.0.0"

GENERIC_APOLOGY = "Sorry, I encountered an error processing your request. Please try again."

NO_REPLY_FALLBACK = "Sorry, I couldn't generate a response."

# Keywords that make a tool relevant to a message, keyed by tool *name*.
# Tools whose name is missing here are never picked by the relevance
# selector and can only be reached through explicit invocation.
TOOL_KEYWORDS = {
    "file-system": ("file", "read", "write", "directory", "folder", "save", "load"),
    "git": ("git", "commit", "branch", "repository", "code", "version"),
    "database": ("database", "query", "sql", "data", "table", "record"),
    "web-search": ("search", "find", "lookup", "google", "web", "internet"),
    "calendar": ("calendar", "schedule", "meeting", "appointment", "date", "time"),
    "email": ("email", "send", "message", "mail", "contact"),
}

# Leading/trailing phrases stripped from a message to build a search query
SEARCH_PREFIX_PATTERN = r"^(search for|find|lookup|google)\s+"
SEARCH_SUFFIX_PATTERN = r"\s+(on the web|online|internet)$"
