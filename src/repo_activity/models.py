from __future__ import annotations

import dataclasses
import datetime as dt

from .errors import ActivityError


@dataclasses.dataclass(frozen=True)
class CommitDescriptor:
    sha: str
    author_name: str
    author_email: str
    authored_at: dt.datetime  # UTC
    message: str
    parents: tuple[str, ...] = ()

    @property
    def is_root(self) -> bool:
        return not self.parents


@dataclasses.dataclass(frozen=True)
class FileChange:
    path: str
    added: int
    removed: int
    old_path: str = ""  # set for renames/copies
    binary: bool = False


@dataclasses.dataclass(frozen=True)
class CommitRecord:
    sha: str
    author_name: str
    author_email: str
    authored_at: dt.datetime
    message: str
    parents: tuple[str, ...]
    lines_added: int
    lines_removed: int
    files_changed: int
    paths: tuple[str, ...] = ()

    @classmethod
    def from_changes(cls, commit: CommitDescriptor, changes: list[FileChange]) -> CommitRecord:
        return cls(
            sha=commit.sha,
            author_name=commit.author_name,
            author_email=commit.author_email,
            authored_at=commit.authored_at,
            message=commit.message,
            parents=commit.parents,
            lines_added=sum(c.added for c in changes),
            lines_removed=sum(c.removed for c in changes),
            files_changed=len(changes),
            paths=tuple(c.path for c in changes),
        )

    @property
    def changed(self) -> int:
        return self.lines_added + self.lines_removed


def _earliest(a: dt.datetime | None, b: dt.datetime | None) -> dt.datetime | None:
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)


def _latest(a: dt.datetime | None, b: dt.datetime | None) -> dt.datetime | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


@dataclasses.dataclass
class ContributorStats:
    name: str
    email: str
    commits: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    first_commit_at: dt.datetime | None = None
    last_commit_at: dt.datetime | None = None

    @property
    def changed(self) -> int:
        return self.lines_added + self.lines_removed

    def add(self, record: CommitRecord) -> None:
        self.commits += 1
        self.lines_added += record.lines_added
        self.lines_removed += record.lines_removed
        self.first_commit_at = _earliest(self.first_commit_at, record.authored_at)
        self.last_commit_at = _latest(self.last_commit_at, record.authored_at)

    def merge(self, other: ContributorStats) -> None:
        self.commits += other.commits
        self.lines_added += other.lines_added
        self.lines_removed += other.lines_removed
        self.first_commit_at = _earliest(self.first_commit_at, other.first_commit_at)
        self.last_commit_at = _latest(self.last_commit_at, other.last_commit_at)


@dataclasses.dataclass
class RepositoryStats:
    path: str
    commit_count: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    files_touched: int = 0  # distinct paths
    first_commit_at: dt.datetime | None = None
    last_commit_at: dt.datetime | None = None

    def add(self, record: CommitRecord) -> None:
        self.commit_count += 1
        self.lines_added += record.lines_added
        self.lines_removed += record.lines_removed
        self.first_commit_at = _earliest(self.first_commit_at, record.authored_at)
        self.last_commit_at = _latest(self.last_commit_at, record.authored_at)

    def merge(self, other: RepositoryStats) -> None:
        self.commit_count += other.commit_count
        self.lines_added += other.lines_added
        self.lines_removed += other.lines_removed
        self.first_commit_at = _earliest(self.first_commit_at, other.first_commit_at)
        self.last_commit_at = _latest(self.last_commit_at, other.last_commit_at)


@dataclasses.dataclass(frozen=True)
class CommitWarning:
    kind: str
    sha: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind}: {self.sha}: {self.message}"


@dataclasses.dataclass
class AggregationResult:
    repository: RepositoryStats
    contributors: dict[tuple[str, str], ContributorStats]  # (name, email) -> stats
    commits: list[CommitRecord]  # traversal order
    warnings: list[CommitWarning]


@dataclasses.dataclass
class RunResult:
    ok: bool
    repository: RepositoryStats | None = None
    contributors: list[ContributorStats] = dataclasses.field(default_factory=list)
    warnings: list[CommitWarning] = dataclasses.field(default_factory=list)
    error: ActivityError | None = None
