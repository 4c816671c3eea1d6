from __future__ import annotations

import sqlite3
import sys
from pathlib import Path

from .aggregate import DEFAULT_CHUNK_SIZE, DiffFn, ProgressFn, aggregate_history
from .errors import ActivityError
from .git import open_repository
from .models import ContributorStats, RunResult
from .periods import DateRange
from .store import write_snapshot


def _top_contributors(contributors: list[ContributorStats], n: int) -> list[ContributorStats]:
    return sorted(contributors, key=lambda c: (-c.commits, -c.changed, c.name, c.email))[:n]


def run_activity(
    *,
    repo_path: Path,
    conn: sqlite3.Connection,
    date_range: DateRange | None = None,
    jobs: int | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    diff_fn: DiffFn | None = None,
    progress: ProgressFn | None = None,
) -> RunResult:
    """
    Reader -> filter -> aggregator -> writer.

    Fatal errors come back on the result untouched and nothing is written.
    Per-commit diff failures only show up as warnings.
    """
    try:
        repo = open_repository(repo_path)
        result = aggregate_history(
            repo,
            date_range,
            jobs=jobs,
            chunk_size=chunk_size,
            diff_fn=diff_fn,
            progress=progress,
        )
        write_snapshot(conn, result)
    except ActivityError as e:
        return RunResult(ok=False, error=e)

    return RunResult(
        ok=True,
        repository=result.repository,
        contributors=list(result.contributors.values()),
        warnings=result.warnings,
    )


def print_header(*, repo_path: Path, date_range: DateRange, db_path: Path, jobs: int, chunk_size: int) -> None:
    lines = [
        "┌──────────────────────────────────────────────────────────────┐",
        "│                        repo-activity                         │",
        "└──────────────────────────────────────────────────────────────┘",
        "",
        f"- Repository: {repo_path}",
        f"- Window: {date_range.label}",
        f"- Jobs: {jobs}  Chunk size: {chunk_size}",
        f"- Store: {db_path}",
        "",
    ]
    print("\n".join(lines))


def print_warnings(result: RunResult, limit: int = 20) -> None:
    if not result.warnings:
        return
    print(f"Warning: {len(result.warnings)} commit(s) could not be diffed and were counted with zero changes:", file=sys.stderr)
    for w in result.warnings[:limit]:
        print(f"  {w}", file=sys.stderr)
    if len(result.warnings) > limit:
        print(f"  ... and {len(result.warnings) - limit} more", file=sys.stderr)


def print_summary(result: RunResult, top_n: int = 5) -> None:
    repo = result.repository
    if repo is None:
        return
    print("")
    print("Repository Analysis Summary:")
    print("---------------------------")
    print(f"Total commits: {repo.commit_count}")
    print(f"Total contributors: {len(result.contributors)}")
    print(f"Total lines added: {repo.lines_added}")
    print(f"Total lines removed: {repo.lines_removed}")
    print(f"Files touched: {repo.files_touched}")
    if repo.first_commit_at is not None and repo.last_commit_at is not None:
        print(f"First commit: {repo.first_commit_at.isoformat()}")
        print(f"Last commit: {repo.last_commit_at.isoformat()}")
    print(f"Warnings: {len(result.warnings)}")

    top = _top_contributors(result.contributors, top_n)
    if not top:
        return
    print("")
    print("Top contributors:")
    for i, c in enumerate(top, start=1):
        print(f"{i:>2}. {c.name} <{c.email}>: {c.commits} commits, +{c.lines_added} -{c.lines_removed} lines")
