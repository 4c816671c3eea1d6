from __future__ import annotations

import subprocess

from .errors import DiffComputationError
from .git import GitRepository, run_git
from .models import CommitDescriptor, FileChange

DIFF_TIMEOUT_S = 300


def parse_numstat_z(out: str) -> list[FileChange]:
    """
    Parse `--numstat -z` output.

    Plain entries are `added<TAB>removed<TAB>path<NUL>`. Renames and copies
    leave the path empty and follow with `old<NUL>new<NUL>`. Binary files
    report `-` for both counts and contribute no line deltas.
    """
    parts = out.split("\0")
    if parts and parts[-1] == "":
        parts.pop()
    changes: list[FileChange] = []
    i = 0
    while i < len(parts):
        head = parts[i]
        i += 1
        if not head.strip():
            continue
        fields = head.lstrip("\n").split("\t", 2)
        if len(fields) != 3:
            raise ValueError(f"malformed numstat entry: {head[:80]!r}")
        added_s, removed_s, path = fields
        old_path = ""
        if not path:
            if i + 1 >= len(parts):
                raise ValueError("truncated rename entry in numstat output")
            old_path, path = parts[i], parts[i + 1]
            i += 2

        if added_s == "-" or removed_s == "-":
            changes.append(FileChange(path=path, added=0, removed=0, old_path=old_path, binary=True))
            continue
        changes.append(FileChange(path=path, added=int(added_s), removed=int(removed_s), old_path=old_path))
    return changes


def diff_command(commit: CommitDescriptor) -> list[str]:
    args = ["diff-tree", "-r", "-M", "--numstat", "-z", "--no-commit-id", "--patience"]
    if commit.is_root:
        return [*args, "--root", commit.sha]
    # merges are measured against their first parent only
    return [*args, commit.parents[0], commit.sha]


def compute_diff(repo: GitRepository, commit: CommitDescriptor) -> list[FileChange]:
    try:
        code, out, err = run_git(diff_command(commit), cwd=repo.path, timeout_s=DIFF_TIMEOUT_S)
    except subprocess.TimeoutExpired as e:
        raise DiffComputationError(commit.sha, f"git diff-tree timed out after {e.timeout}s") from e
    if code != 0:
        raise DiffComputationError(commit.sha, f"git diff-tree exited {code}: {err.strip()[:500]}")
    try:
        return parse_numstat_z(out)
    except ValueError as e:
        raise DiffComputationError(commit.sha, str(e)) from e
