"""Provider-neutral definitions of the two repository tools.

Providers wrap each entry in their own envelope (OpenAI ``function``,
Anthropic ``input_schema``); the names and parameters are shared.
"""

READ_FILE = {
    "name": "read_file",
    "description": (
        "Read one file from the repository and return its lines prefixed with their 1-based line "
        "numbers, formatted as '<lineno>: <text>'. Use offset/limit to read only the section you "
        "need. When a short read starts inside an indented block, the enclosing lines above it are "
        "included and marked '<lineno>- <text>'. Binary files cannot be read. "
        "Example: { \"path\": \"src/main.py\", \"offset\": 40, \"limit\": 30 }"
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path to the file, relative to the repository root.",
            },
            "offset": {
                "type": "integer",
                "description": "1-based line to start reading from (default 1).",
            },
            "limit": {
                "type": "integer",
                "description": "Maximum number of lines to return (default and maximum: the per-read cap).",
            },
        },
        "required": ["path"],
        "additionalProperties": False,
    },
}

SEARCH_FILES = {
    "name": "search_files",
    "description": (
        "Regex search across text files in a directory of the repository, recursively. Each match is "
        "shown as '<path>:<lineno>: <text>' with one context line before and after, and the output "
        "ends with '<shown>/<total> matches shown'. Dependency, build and VCS directories are "
        "skipped. Prefer narrow patterns and a file_pattern to keep results small. "
        "Example: { \"path\": \"src\", \"regex\": \"def\\\\s+build_\", \"file_pattern\": \"*.py\" }"
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Directory to search, relative to the repository root (default: the root).",
            },
            "regex": {
                "type": "string",
                "description": "Python regular expression matched against each line.",
            },
            "file_pattern": {
                "type": "string",
                "description": "Optional glob limiting which files are searched, e.g. '*.py'.",
            },
        },
        "required": ["regex"],
        "additionalProperties": False,
    },
}

TOOL_SCHEMAS = [READ_FILE, SEARCH_FILES]
