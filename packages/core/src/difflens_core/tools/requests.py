"""Decode model-issued tool calls and dispatch them to the repository tools.

The tool set is closed: read_file and search_files. Every argument is
treated as untrusted input and validated here before any file is touched.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Union

from difflens_core.config import Budget
from difflens_core.conversation import RawToolCall, ToolResult
from difflens_core.errors import InvalidArguments, ToolError
from difflens_core.tools.read import read_file
from difflens_core.tools.search import search_files

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadFile:
    TOOL_NAME: ClassVar[str] = "read_file"

    request_id: str
    path: str
    offset: int | None = None
    limit: int | None = None


@dataclass(frozen=True)
class SearchFiles:
    TOOL_NAME: ClassVar[str] = "search_files"

    request_id: str
    regex_pattern: str
    path_root: str | None = None
    file_glob: str | None = None


ToolRequest = Union[ReadFile, SearchFiles]


def _decode_arguments(call: RawToolCall) -> dict:
    args = call.arguments
    if isinstance(args, str):
        if not args.strip():
            args = {}
        else:
            try:
                args = json.loads(args)
            except json.JSONDecodeError as e:
                raise InvalidArguments(f"Arguments are not valid JSON: {e}")
    if not isinstance(args, dict):
        raise InvalidArguments("Arguments must be a JSON object")
    return args


def _get_str(args: dict, key: str, required: bool = False) -> str | None:
    value = args.get(key)
    if value is None:
        if required:
            raise InvalidArguments(f"Missing required argument '{key}'")
        return None
    if not isinstance(value, str):
        raise InvalidArguments(f"Argument '{key}' must be a string")
    if required and not value.strip():
        raise InvalidArguments(f"Argument '{key}' must not be empty")
    return value


def _get_int(args: dict, key: str) -> int | None:
    value = args.get(key)
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArguments(f"Argument '{key}' must be an integer")
    return value


def decode_tool_call(call: RawToolCall) -> ToolRequest:
    """Build a ToolRequest from a model-issued call, or raise InvalidArguments."""
    args = _decode_arguments(call)
    if call.name == ReadFile.TOOL_NAME:
        return ReadFile(
            request_id=call.id,
            path=_get_str(args, "path", required=True),
            offset=_get_int(args, "offset"),
            limit=_get_int(args, "limit"),
        )
    if call.name == SearchFiles.TOOL_NAME:
        return SearchFiles(
            request_id=call.id,
            regex_pattern=_get_str(args, "regex", required=True),
            path_root=_get_str(args, "path") or None,
            file_glob=_get_str(args, "file_pattern") or None,
        )
    raise InvalidArguments(f"Unknown tool {call.name!r}; available tools are read_file and search_files")


def execute(request: ToolRequest, root: Path, budget: Budget) -> ToolResult:
    """Run one request. Tool errors are captured in the result, never raised."""
    try:
        if isinstance(request, ReadFile):
            body = read_file(root, request.path, request.offset, request.limit, budget=budget)
        elif isinstance(request, SearchFiles):
            body = search_files(
                root,
                request.regex_pattern,
                path_root=request.path_root,
                file_glob=request.file_glob,
                budget=budget,
            )
        else:
            raise TypeError(f"Unsupported tool request: {request!r}")
    except ToolError as e:
        logger.info("%s failed: %s", describe(request), e)
        return ToolResult(request_id=request.request_id, tool_name=request.TOOL_NAME, error=e)
    return ToolResult(request_id=request.request_id, tool_name=request.TOOL_NAME, body=body)


def describe(request: ToolRequest) -> str:
    """One-line summary for logs and the tool-call table."""
    if isinstance(request, ReadFile):
        if request.offset is None and request.limit is None:
            return f"read_file {request.path}"
        start = request.offset or 1
        if request.limit is None:
            return f"read_file {request.path}:{start}-"
        return f"read_file {request.path}:{start}-{start + request.limit - 1}"
    summary = f"search_files {request.path_root or '.'} regex={request.regex_pattern}"
    if request.file_glob:
        summary += f" files={request.file_glob}"
    return summary
