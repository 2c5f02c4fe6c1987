"""Exception hierarchy for difflens.

Three families, each handled at a different layer:

    ChangeSetError  → raised by the git collector, reported by the CLI (exit 1)
    ToolError       → raised by repository tools, returned to the model as
                      ToolResult.error content; never ends the review
    loop errors     → MalformedVerdict / RemoteUnavailable end the review
                      as an Aborted outcome (exit 2)
"""

from __future__ import annotations


class DifflensError(Exception):
    """Base class for every error raised by difflens."""


class ConfigError(DifflensError):
    """Invalid or incomplete configuration (bad budget value, missing API key)."""


# ---------------------------------------------------------------------------
# Change set collection
# ---------------------------------------------------------------------------


class ChangeSetError(DifflensError):
    pass


class GitUnavailable(ChangeSetError):
    """git is missing, timed out, or the directory is not a work tree."""


class NoMergeBase(ChangeSetError):
    """HEAD and the default branch share no common ancestor."""

    def __init__(self, default_branch: str, detail: str = ""):
        self.default_branch = default_branch
        message = f"No merge base between HEAD and {default_branch!r}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


# ---------------------------------------------------------------------------
# Tool execution: recoverable, surfaced to the model
# ---------------------------------------------------------------------------


class ToolError(DifflensError):
    kind: str = "ToolError"

    def render(self, tool: str) -> str:
        """Text the model sees in place of a tool result."""
        return f"ERROR ({self.kind}) in {tool}: {self}"


class PathEscape(ToolError):
    kind = "PathEscape"


class NotFound(ToolError):
    kind = "NotFound"


class NotUtf8(ToolError):
    kind = "NotUtf8"


class RangeInvalid(ToolError):
    kind = "RangeInvalid"


class InvalidRegex(ToolError):
    kind = "InvalidRegex"


class SearchTimeout(ToolError):
    kind = "SearchTimeout"


class InvalidArguments(ToolError):
    """Unknown tool name or arguments that do not match the tool schema."""

    kind = "InvalidArguments"


class BudgetExceeded(ToolError):
    kind = "BudgetExceeded"


# ---------------------------------------------------------------------------
# Loop-level: terminal
# ---------------------------------------------------------------------------


class MalformedVerdict(DifflensError):
    def __init__(self, message: str, raw_text: str):
        self.raw_text = raw_text
        super().__init__(message)


class RemoteUnavailable(DifflensError):
    """The model transport failed (network error, timeout, API error)."""
