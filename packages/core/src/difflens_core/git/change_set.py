"""Compute the change set under review from the local git repository.

The baseline is the merge base of HEAD and the default branch; the diff is
taken against the working tree, so uncommitted edits are reviewed too.
Everything here is read-only: no fetches, no network access.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from difflens_core.errors import GitUnavailable, NoMergeBase

logger = logging.getLogger(__name__)

_GIT_TIMEOUT = 30
_DIFF_CONTEXT_LINES = 5


@dataclass(frozen=True)
class ChangeSet:
    diff_text: str
    changed_files: tuple[str, ...]
    head_ref: str
    merge_base_ref: str
    branch_name: str  # "" on a detached HEAD
    root: Path  # work tree top level; changed_files are relative to it
    repo_name: str = ""
    remote_url: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.changed_files


@dataclass
class GitResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


def run_git(args: list[str], cwd: Path, timeout: int = _GIT_TIMEOUT) -> GitResult:
    """Run one git command in ``cwd``.

    Raises GitUnavailable when git cannot be executed at all; a non-zero exit
    status is returned to the caller, which decides what it means.
    """
    cmd = ["git", "-C", str(cwd), *args]
    try:
        result = subprocess.run(cmd, capture_output=True, timeout=timeout)
    except FileNotFoundError:
        raise GitUnavailable("git executable not found on PATH")
    except subprocess.TimeoutExpired:
        raise GitUnavailable(f"git {' '.join(args)} timed out after {timeout}s")
    logger.debug("git %s -> %d", " ".join(args), result.returncode)
    return GitResult(
        returncode=result.returncode,
        stdout=result.stdout.decode("utf-8", errors="replace"),
        stderr=result.stderr.decode("utf-8", errors="replace").strip(),
    )


def _require(args: list[str], cwd: Path) -> str:
    result = run_git(args, cwd)
    if not result.success:
        raise GitUnavailable(f"git {' '.join(args)} failed: {result.stderr}")
    return result.stdout


def _unique_in_order(paths: list[str]) -> tuple[str, ...]:
    seen: set[str] = set()
    ordered = []
    for path in paths:
        if path and path not in seen:
            seen.add(path)
            ordered.append(path)
    return tuple(ordered)


def _remote_url(repo_root: Path, branch_name: str) -> str | None:
    """Best-effort lookup of the URL of the remote the branch tracks."""
    if not branch_name:
        return None
    remote = run_git(["config", "--get", f"branch.{branch_name}.remote"], repo_root)
    remote_name = remote.stdout.strip()
    if not remote.success or not remote_name:
        return None
    url = run_git(["remote", "get-url", remote_name], repo_root)
    if not url.success:
        return None
    return url.stdout.strip() or None


def collect(repo_root: str | Path, default_branch: str) -> ChangeSet:
    """Return the ChangeSet between the merge base with ``default_branch`` and the working tree.

    Raises GitUnavailable if ``repo_root`` is not a usable git work tree and
    NoMergeBase if HEAD and ``default_branch`` share no history (or the branch
    does not exist locally).
    """
    repo_root = Path(repo_root)
    if not repo_root.is_dir():
        raise GitUnavailable(f"Repository root does not exist: {repo_root}")

    toplevel = Path(_require(["rev-parse", "--show-toplevel"], repo_root).strip()).resolve()
    head_ref = _require(["rev-parse", "HEAD"], repo_root).strip()

    merge_base = run_git(["merge-base", "HEAD", default_branch], repo_root)
    merge_base_ref = merge_base.stdout.strip()
    if not merge_base.success or not merge_base_ref:
        raise NoMergeBase(default_branch, merge_base.stderr)

    branch_name = _require(["branch", "--show-current"], repo_root).strip()

    diff_text = _require(
        ["diff", "--no-ext-diff", "--no-color", f"--unified={_DIFF_CONTEXT_LINES}", merge_base_ref],
        repo_root,
    )
    names = _require(["diff", "--no-ext-diff", "--name-only", merge_base_ref], repo_root)
    changed_files = _unique_in_order(names.splitlines())

    # Mode-only or submodule changes can leave one side empty; keep the
    # invariant that an empty diff means an empty file list and vice versa.
    if not diff_text.strip():
        diff_text = ""
        changed_files = ()

    change_set = ChangeSet(
        diff_text=diff_text,
        changed_files=changed_files,
        head_ref=head_ref,
        merge_base_ref=merge_base_ref,
        branch_name=branch_name,
        root=toplevel,
        repo_name=toplevel.name,
        remote_url=_remote_url(repo_root, branch_name),
    )
    logger.info(
        "Collected change set: %d file(s) changed since %s (HEAD %s)",
        len(changed_files),
        merge_base_ref[:7],
        head_ref[:7],
    )
    return change_set
