"""
SQLite store for repository activity snapshots.

Three tables: one row per repository, one per (repository, contributor), one
per commit. A snapshot replaces whatever an earlier run stored for the same
repository: its contributor and commit rows are cleared and the new ones
upserted in the same transaction, so re-running over the same history leaves
the same rows behind and a narrower run leaves no stale rows.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import sqlite3
from pathlib import Path

from .errors import PersistenceError
from .models import AggregationResult, CommitRecord, ContributorStats, RepositoryStats

SCHEMA_VERSION = 1
BATCH_SIZE = 5000

SCHEMA = """
CREATE TABLE IF NOT EXISTS repositories (
    path TEXT PRIMARY KEY,
    commit_count INTEGER NOT NULL,
    lines_added INTEGER NOT NULL,
    lines_removed INTEGER NOT NULL,
    files_touched INTEGER NOT NULL,
    first_commit_at TEXT,
    last_commit_at TEXT
);

CREATE TABLE IF NOT EXISTS contributors (
    repo_path TEXT NOT NULL REFERENCES repositories(path) ON DELETE CASCADE,
    name TEXT NOT NULL,
    email TEXT NOT NULL,
    commit_count INTEGER NOT NULL,
    lines_added INTEGER NOT NULL,
    lines_removed INTEGER NOT NULL,
    first_commit_at TEXT,
    last_commit_at TEXT,
    PRIMARY KEY (repo_path, email, name)
);

CREATE TABLE IF NOT EXISTS commits (
    hash TEXT PRIMARY KEY,
    repo_path TEXT NOT NULL REFERENCES repositories(path) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    author_name TEXT NOT NULL,
    author_email TEXT NOT NULL,
    authored_at TEXT NOT NULL,
    message TEXT NOT NULL,
    parents TEXT NOT NULL,
    files_changed INTEGER NOT NULL,
    lines_added INTEGER NOT NULL,
    lines_removed INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_commits_repo_position ON commits(repo_path, position);
CREATE INDEX IF NOT EXISTS idx_commits_repo_author ON commits(repo_path, author_email);
"""

UPSERT_REPOSITORY = """
INSERT INTO repositories (
    path, commit_count, lines_added, lines_removed, files_touched, first_commit_at, last_commit_at
) VALUES (?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(path) DO UPDATE SET
    commit_count = excluded.commit_count,
    lines_added = excluded.lines_added,
    lines_removed = excluded.lines_removed,
    files_touched = excluded.files_touched,
    first_commit_at = excluded.first_commit_at,
    last_commit_at = excluded.last_commit_at
"""

UPSERT_CONTRIBUTOR = """
INSERT INTO contributors (
    repo_path, name, email, commit_count, lines_added, lines_removed, first_commit_at, last_commit_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(repo_path, email, name) DO UPDATE SET
    commit_count = excluded.commit_count,
    lines_added = excluded.lines_added,
    lines_removed = excluded.lines_removed,
    first_commit_at = excluded.first_commit_at,
    last_commit_at = excluded.last_commit_at
"""

UPSERT_COMMIT = """
INSERT INTO commits (
    hash, repo_path, position, author_name, author_email, authored_at, message, parents,
    files_changed, lines_added, lines_removed
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(hash) DO UPDATE SET
    repo_path = excluded.repo_path,
    position = excluded.position,
    author_name = excluded.author_name,
    author_email = excluded.author_email,
    authored_at = excluded.authored_at,
    message = excluded.message,
    parents = excluded.parents,
    files_changed = excluded.files_changed,
    lines_added = excluded.lines_added,
    lines_removed = excluded.lines_removed
"""

DELETE_CONTRIBUTORS = "DELETE FROM contributors WHERE repo_path = ?"
DELETE_COMMITS = "DELETE FROM commits WHERE repo_path = ?"


def connect(db_path: Path | str) -> sqlite3.Connection:
    """
    Open the store.

    Configures:
    - WAL mode so readers are not blocked while a snapshot is written
    - foreign keys
    - Row factory for dict-like access
    """
    try:
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(db_path))
    except (OSError, sqlite3.Error) as e:
        raise PersistenceError(f"cannot open store {db_path}: {e}") from e
    try:
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
    except sqlite3.Error as e:
        conn.close()
        raise PersistenceError(f"cannot open store {db_path}: {e}") from e
    return conn


def ensure_schema(conn: sqlite3.Connection) -> None:
    try:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        if version >= SCHEMA_VERSION:
            return
        conn.executescript(SCHEMA)
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        conn.commit()
    except sqlite3.Error as e:
        raise PersistenceError(f"cannot create schema: {e}") from e


def _ts(value: dt.datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> dt.datetime | None:
    return dt.datetime.fromisoformat(value) if value else None


def _repository_row(repo: RepositoryStats) -> tuple[object, ...]:
    return (
        repo.path,
        repo.commit_count,
        repo.lines_added,
        repo.lines_removed,
        repo.files_touched,
        _ts(repo.first_commit_at),
        _ts(repo.last_commit_at),
    )


def _contributor_row(repo_path: str, c: ContributorStats) -> tuple[object, ...]:
    return (
        repo_path,
        c.name,
        c.email,
        c.commits,
        c.lines_added,
        c.lines_removed,
        _ts(c.first_commit_at),
        _ts(c.last_commit_at),
    )


def _commit_row(repo_path: str, position: int, c: CommitRecord) -> tuple[object, ...]:
    return (
        c.sha,
        repo_path,
        position,
        c.author_name,
        c.author_email,
        c.authored_at.isoformat(),
        c.message,
        " ".join(c.parents),
        c.files_changed,
        c.lines_added,
        c.lines_removed,
    )


def write_snapshot(conn: sqlite3.Connection, result: AggregationResult) -> None:
    """
    Replace the stored snapshot of one repository in a single transaction:
    upsert the repository row, drop its old contributor and commit rows, then
    upsert the new ones. Nothing is visible unless everything was written.
    """
    repo_path = result.repository.path
    contributor_rows = [_contributor_row(repo_path, c) for c in result.contributors.values()]
    commit_rows = [_commit_row(repo_path, i, c) for i, c in enumerate(result.commits)]

    try:
        with conn:
            conn.execute("BEGIN")
            conn.execute(UPSERT_REPOSITORY, _repository_row(result.repository))
            conn.execute(DELETE_CONTRIBUTORS, (repo_path,))
            conn.execute(DELETE_COMMITS, (repo_path,))
            if contributor_rows:
                conn.executemany(UPSERT_CONTRIBUTOR, contributor_rows)
            for i in range(0, len(commit_rows), BATCH_SIZE):
                conn.executemany(UPSERT_COMMIT, commit_rows[i : i + BATCH_SIZE])
    except sqlite3.Error as e:
        raise PersistenceError(f"failed to write snapshot for {repo_path}: {e}") from e


@dataclasses.dataclass
class Snapshot:
    repository: RepositoryStats
    contributors: list[ContributorStats]  # most commits first
    commits: list[CommitRecord]  # traversal order


def load_snapshot(conn: sqlite3.Connection, repo_path: str) -> Snapshot | None:
    row = conn.execute(
        """
        SELECT path, commit_count, lines_added, lines_removed, files_touched, first_commit_at, last_commit_at
        FROM repositories
        WHERE path = ?
        """,
        (repo_path,),
    ).fetchone()
    if row is None:
        return None

    repository = RepositoryStats(
        path=row["path"],
        commit_count=int(row["commit_count"]),
        lines_added=int(row["lines_added"]),
        lines_removed=int(row["lines_removed"]),
        files_touched=int(row["files_touched"]),
        first_commit_at=_parse_ts(row["first_commit_at"]),
        last_commit_at=_parse_ts(row["last_commit_at"]),
    )

    contributors = [
        ContributorStats(
            name=r["name"],
            email=r["email"],
            commits=int(r["commit_count"]),
            lines_added=int(r["lines_added"]),
            lines_removed=int(r["lines_removed"]),
            first_commit_at=_parse_ts(r["first_commit_at"]),
            last_commit_at=_parse_ts(r["last_commit_at"]),
        )
        for r in conn.execute(
            """
            SELECT name, email, commit_count, lines_added, lines_removed, first_commit_at, last_commit_at
            FROM contributors
            WHERE repo_path = ?
            ORDER BY commit_count DESC, lines_added + lines_removed DESC, name, email
            """,
            (repo_path,),
        )
    ]

    commits = [
        CommitRecord(
            sha=r["hash"],
            author_name=r["author_name"],
            author_email=r["author_email"],
            authored_at=dt.datetime.fromisoformat(r["authored_at"]),
            message=r["message"],
            parents=tuple(r["parents"].split()),
            lines_added=int(r["lines_added"]),
            lines_removed=int(r["lines_removed"]),
            files_changed=int(r["files_changed"]),
        )
        for r in conn.execute(
            """
            SELECT hash, author_name, author_email, authored_at, message, parents,
                   files_changed, lines_added, lines_removed
            FROM commits
            WHERE repo_path = ?
            ORDER BY position, authored_at DESC
            """,
            (repo_path,),
        )
    ]

    return Snapshot(repository=repository, contributors=contributors, commits=commits)
