from __future__ import annotations

from pathlib import Path

from difflens_core.errors import PathEscape


def resolve_within(root: Path, path: str) -> Path:
    """Resolve ``path`` against ``root`` and refuse anything that lands outside it.

    Symlinks and ``..`` segments are resolved before the check, so a link that
    points out of the tree is rejected just like a literal traversal. Absolute
    paths are accepted only when they resolve inside ``root``.
    """
    if "\x00" in path:
        raise PathEscape(f"Path contains a NUL byte: {path!r}")
    real_root = root.resolve()
    candidate = Path(path)
    if not candidate.is_absolute():
        candidate = real_root / candidate
    try:
        resolved = candidate.resolve()
    except (OSError, RuntimeError) as e:
        # RuntimeError: symlink loop on older interpreters
        raise PathEscape(f"Cannot resolve {path!r}: {e}")
    if resolved != real_root and real_root not in resolved.parents:
        raise PathEscape(f"Path {path!r} resolves outside the repository root")
    return resolved


def display_path(root: Path, resolved: Path) -> str:
    """Repository-relative POSIX path used in tool output."""
    relative = resolved.relative_to(root.resolve())
    return relative.as_posix() or "."
