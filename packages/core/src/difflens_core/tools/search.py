"""search_files: bounded regex search with context lines.

Output contract (parsed by the model, keep stable):

    <path>-<lineno>- <text>     context line
    <path>:<lineno>: <text>     matching line
    --                          separator between match blocks
    <shown>/<total> matches shown
"""

from __future__ import annotations

import fnmatch
import logging
import os
import time
from pathlib import Path
from typing import Iterator

import regex

from difflens_core.config import Budget
from difflens_core.errors import InvalidRegex, NotFound, SearchTimeout
from difflens_core.tools.paths import display_path, resolve_within
from difflens_core.tools.read import is_binary, iter_lines

logger = logging.getLogger(__name__)

CONTEXT_LINES = 1
MAX_FILE_BYTES = 2 * 1024 * 1024
# Wall-clock limit for one search_files call, shared by every line it matches.
SEARCH_TIMEOUT_SECONDS = 10.0

# Version-control metadata, dependency and build-artifact directories.
IGNORED_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        "node_modules",
        "target",
        "build",
        "dist",
        "__pycache__",
        ".venv",
        "venv",
        ".tox",
        ".mypy_cache",
        ".pytest_cache",
    }
)
_IGNORED_DIR_SUFFIXES = (".egg-info",)


def is_ignored_dir(name: str) -> bool:
    return name in IGNORED_DIRS or name.endswith(_IGNORED_DIR_SUFFIXES)


def _iter_files(base: Path) -> Iterator[Path]:
    """Regular files under ``base`` in sorted, reproducible order. Symlinks are skipped."""
    if base.is_file():
        yield base
        return
    for dirpath, dirnames, filenames in os.walk(base, followlinks=False):
        dirnames[:] = sorted(
            d for d in dirnames if not is_ignored_dir(d) and not os.path.islink(os.path.join(dirpath, d))
        )
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.is_symlink() or not path.is_file():
                continue
            yield path


def _glob_matches(relative: str, file_glob: str) -> bool:
    return fnmatch.fnmatchcase(relative, file_glob) or fnmatch.fnmatchcase(relative.rsplit("/", 1)[-1], file_glob)


def _text_lines(path: Path) -> list[str] | None:
    """File lines, or None for anything that is not searchable text."""
    try:
        if path.stat().st_size > MAX_FILE_BYTES or is_binary(path):
            return None
        with open(path, encoding="utf-8", newline=None) as f:
            return list(iter_lines(f))
    except UnicodeDecodeError:
        return None
    except OSError as e:
        logger.debug("search_files: skipping unreadable %s: %s", path, e)
        return None


def _render_match(relative: str, lines: list[str], index: int) -> str:
    before = max(0, index - CONTEXT_LINES)
    after = min(len(lines), index + CONTEXT_LINES + 1)
    block = []
    for i in range(before, after):
        sep = ":" if i == index else "-"
        block.append(f"{relative}{sep}{i + 1}{sep} {lines[i]}")
    return "\n".join(block)


def _matches(pattern: regex.Pattern, line: str, deadline: float) -> bool:
    """Raises TimeoutError once ``deadline`` has passed, even mid-match."""
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise TimeoutError("regex timed out")
    return pattern.search(line, timeout=remaining) is not None


def search_files(
    root: Path,
    regex_pattern: str,
    path_root: str | None = None,
    file_glob: str | None = None,
    *,
    budget: Budget,
) -> str:
    """Search text files under ``path_root`` (default: the repository root) for ``regex_pattern``.

    At most ``budget.max_search_matches`` matches are rendered; the rest are
    only counted, and the trailing summary line always states the true total.
    The pattern is matched with a deadline of SEARCH_TIMEOUT_SECONDS for the
    whole call, so a catastrophically backtracking pattern ends in
    SearchTimeout instead of blocking. Raises InvalidRegex, SearchTimeout,
    PathEscape or NotFound.
    """
    try:
        pattern = regex.compile(regex_pattern)
    except regex.error as e:
        raise InvalidRegex(f"Invalid regex {regex_pattern!r}: {e}")

    base = resolve_within(root, path_root or ".")
    if not base.exists():
        raise NotFound(f"No such directory: {path_root}")

    cap = budget.max_search_matches
    blocks: list[str] = []
    total = 0

    relative_base = display_path(root, base)
    if relative_base != "." and any(is_ignored_dir(part) for part in relative_base.split("/")):
        logger.debug("search_files: %s is inside an ignored directory", relative_base)
        return "0/0 matches shown"

    deadline = time.monotonic() + SEARCH_TIMEOUT_SECONDS
    try:
        for path in _iter_files(base):
            relative = display_path(root, path)
            if file_glob and not _glob_matches(relative, file_glob):
                continue
            lines = _text_lines(path)
            if lines is None:
                continue
            for index, line in enumerate(lines):
                if not _matches(pattern, line, deadline):
                    continue
                total += 1
                if len(blocks) < cap:
                    blocks.append(_render_match(relative, lines, index))
    except TimeoutError:
        raise SearchTimeout(
            f"Search for {regex_pattern!r} did not finish within {SEARCH_TIMEOUT_SECONDS:g}s; use a simpler pattern"
        )

    logger.debug("search_files %r: %d match(es), %d shown", regex_pattern, total, len(blocks))
    summary = f"{len(blocks)}/{total} matches shown"
    if not blocks:
        return summary
    return "\n--\n".join(blocks) + "\n" + summary
