"""read_file: bounded, line-numbered slice of one repository file.

Output contract (parsed by the model, keep stable):

    <lineno>: <text>          a requested line
    <lineno>- <text>          an enclosing-context line added before the slice
    [truncated, N more lines] the character cap cut the output short
    [more lines follow, continue with offset=N]
                              a read without ``limit`` stopped before the end of the file
"""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from typing import Iterator, TextIO

from difflens_core.config import Budget
from difflens_core.errors import NotFound, NotUtf8, RangeInvalid
from difflens_core.tools.paths import resolve_within

logger = logging.getLogger(__name__)

MAX_LINE_LENGTH = 2000
MAX_OUTPUT_CHARS = 100_000

# Enclosing-block lookup only kicks in for narrow reads; a wide read already
# carries its own context.
_SMALL_READ_LIMIT = 40
_LOOKBACK_LINES = 20
_BINARY_SNIFF_BYTES = 8192
_TAB_WIDTH = 4


def iter_lines(stream: TextIO) -> Iterator[str]:
    """Yield lines without terminators, clipping each to MAX_LINE_LENGTH.

    The remainder of an over-long line is consumed in chunks and discarded,
    so a single huge line never has to fit in memory.
    """
    while True:
        line = stream.readline(MAX_LINE_LENGTH + 1)
        if not line:
            return
        if line.endswith("\n"):
            yield line[:-1]
            continue
        if len(line) <= MAX_LINE_LENGTH:
            yield line  # last line, no trailing newline
            return
        while True:
            rest = stream.readline(MAX_LINE_LENGTH)
            if not rest or rest.endswith("\n"):
                break
        yield line[:MAX_LINE_LENGTH] + "..."


def indent_width(line: str) -> int:
    width = 0
    for ch in line:
        if ch == "\t":
            width += _TAB_WIDTH
        elif ch.isspace():
            width += 1
        else:
            break
    return width


def is_binary(path: Path) -> bool:
    with open(path, "rb") as f:
        return b"\x00" in f.read(_BINARY_SNIFF_BYTES)


def _enclosing_context(preceding: list[tuple[int, str]], window: list[tuple[int, str]], room: int):
    """Lines leading back to the nearest shallower line above the window.

    Whitespace-depth heuristic only; returns [] when the window starts at
    column zero, no shallower line is within reach, or the extra lines would
    not fit in ``room``.
    """
    anchor = next((text for _, text in window if text.strip()), None)
    if anchor is None:
        return []
    depth = indent_width(anchor)
    if depth == 0:
        return []
    for i in range(len(preceding) - 1, -1, -1):
        text = preceding[i][1]
        if text.strip() and indent_width(text) < depth:
            context = preceding[i:]
            return context if len(context) <= room else []
    return []


def _render(context: list[tuple[int, str]], window: list[tuple[int, str]], continues: bool = False) -> str:
    rendered = [f"{n}- {text}" for n, text in context] + [f"{n}: {text}" for n, text in window]
    out: list[str] = []
    size = 0
    for i, line in enumerate(rendered):
        if size + len(line) + 1 > MAX_OUTPUT_CHARS:
            out.append(f"[truncated, {len(rendered) - i} more lines]")
            return "\n".join(out)
        out.append(line)
        size += len(line) + 1
    if continues:
        out.append(f"[more lines follow, continue with offset={window[-1][0] + 1}]")
    return "\n".join(out)


def read_file(
    root: Path,
    path: str,
    offset: int | None = None,
    limit: int | None = None,
    *,
    budget: Budget,
) -> str:
    """Return lines ``offset`` .. ``offset + limit - 1`` of ``path``, numbered from 1.

    An offset past the end of the file yields an empty string. Raises
    RangeInvalid, PathEscape, NotFound or NotUtf8.
    """
    max_lines = budget.max_read_lines
    start = 1 if offset is None else offset
    count = max_lines if limit is None else limit
    if start < 1:
        raise RangeInvalid(f"offset must be >= 1, got {start}")
    if count < 1:
        raise RangeInvalid(f"limit must be >= 1, got {count}")
    if count > max_lines:
        raise RangeInvalid(f"limit {count} exceeds the per-read cap of {max_lines} lines")

    resolved = resolve_within(root, path)
    if not resolved.is_file():
        raise NotFound(f"No such file: {path}")
    try:
        binary = is_binary(resolved)
    except OSError as e:
        raise NotFound(f"Cannot read {path}: {e.strerror}")
    if binary:
        raise NotUtf8(f"{path} looks like a binary file")

    lookback = _LOOKBACK_LINES if count <= _SMALL_READ_LIMIT and start > 1 else 0
    preceding: deque[tuple[int, str]] = deque(maxlen=lookback)
    window: list[tuple[int, str]] = []
    continues = False
    try:
        with open(resolved, encoding="utf-8", newline=None) as f:
            lines = iter_lines(f)
            for lineno, text in enumerate(lines, 1):
                if lineno < start:
                    if lookback:
                        preceding.append((lineno, text))
                    continue
                window.append((lineno, text))
                if len(window) == count:
                    continues = limit is None and next(lines, None) is not None
                    break
    except UnicodeDecodeError as e:
        raise NotUtf8(f"{path} is not valid UTF-8: {e.reason}")
    except OSError as e:
        raise NotFound(f"Cannot read {path}: {e.strerror}")

    if not window:
        logger.debug("read_file %s: offset %d is past the end of the file", path, start)
        return ""

    context = _enclosing_context(list(preceding), window, room=max_lines - len(window)) if lookback else []
    return _render(context, window, continues)
