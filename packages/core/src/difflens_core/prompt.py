"""Initial system and user prompts for a review.

Only the diff and the list of touched files go into the prompt. Whole files
never do; the model asks for what it needs through the two tools.
"""

from __future__ import annotations

from difflens_core.git.change_set import ChangeSet

TOOL_POLICY = (
    "You have exactly two tools for inspecting the repository: search_files and read_file. "
    "Start from the diff and the list of touched files you already have, then request only the "
    "minimum additional context needed. Be judicious: the number of tool calls is limited, and "
    "you should not read the whole codebase just because more context is available."
)

TOOL_GUIDE = """Tool reference (use only when needed):

search_files
- Purpose: regex search across files in a directory, with one line of context around each match.
  Use it to locate definitions, callers, usages, or confirm a pattern exists elsewhere.
- Parameters:
  - regex (required): Python regular expression matched against each line.
  - path (optional): directory to search, relative to the repository root (default: the root).
  - file_pattern (optional): glob limiting which files are searched, e.g. '*.py'.
- Results are capped; the last line states how many matches were shown out of the total.

read_file
- Purpose: read a file with line numbers once you know what you need.
- Parameters:
  - path (required): file path, relative to the repository root.
  - offset (optional): 1-based line to start reading from (default 1).
  - limit (optional): number of lines to return.
- Prefer a narrow offset/limit around the lines you care about over whole-file reads."""

FRAMING = (
    "Below is a git diff and the list of touched files. "
    "Use search_files and read_file if you need more context."
)


def build_system_prompt(policy: str) -> str:
    """Tool paragraphs first, then the reviewer policy body unchanged."""
    return f"{TOOL_POLICY}\n\n{TOOL_GUIDE}\n\n{policy}"


def build_user_prompt(change_set: ChangeSet, additional_prompt: str | None = None) -> str:
    parts = [FRAMING + "\n"]

    if additional_prompt and additional_prompt.strip():
        parts.append(additional_prompt + "\n")

    parts.append("\nDIFF BEGINS:\n")
    parts.append(change_set.diff_text)
    parts.append("\nDIFF ENDS\n\nTOUCHED FILES:\n")
    parts.extend(f"{path}\n" for path in change_set.changed_files)

    return "".join(parts)


def build_prompts(change_set: ChangeSet, policy: str, additional_prompt: str | None = None) -> tuple[str, str]:
    """Return ``(system_text, user_text)`` for the first exchange. Pure; no I/O."""
    return build_system_prompt(policy), build_user_prompt(change_set, additional_prompt)
