from __future__ import annotations

import dataclasses
import itertools
import os
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from .diff import compute_diff
from .errors import DiffComputationError, WorkerFailure
from .git import GitRepository, iter_commits
from .identity import contributor_key
from .models import (
    AggregationResult,
    CommitDescriptor,
    CommitRecord,
    CommitWarning,
    ContributorStats,
    FileChange,
    RepositoryStats,
)
from .periods import DateRange, filter_commits

DEFAULT_CHUNK_SIZE = 64

DiffFn = Callable[[GitRepository, CommitDescriptor], list[FileChange]]
ProgressFn = Callable[[int, int], None]  # (chunks done, commits diffed)


def default_jobs() -> int:
    return max(1, os.cpu_count() or 1)


@dataclasses.dataclass(frozen=True)
class DiffOutcome:
    """Either the file changes of a commit or the warning explaining why there are none."""

    changes: list[FileChange]
    warning: CommitWarning | None = None

    @property
    def ok(self) -> bool:
        return self.warning is None


def diff_outcome(repo: GitRepository, commit: CommitDescriptor, diff_fn: DiffFn) -> DiffOutcome:
    try:
        return DiffOutcome(changes=diff_fn(repo, commit))
    except DiffComputationError as e:
        return DiffOutcome(
            changes=[],
            warning=CommitWarning(kind="DiffComputationError", sha=commit.sha, message=e.detail),
        )


@dataclasses.dataclass
class ChunkResult:
    index: int
    repository: RepositoryStats
    contributors: dict[tuple[str, str], ContributorStats]
    commits: list[CommitRecord]
    paths: set[str]
    warnings: list[CommitWarning]

    def add(self, record: CommitRecord) -> None:
        self.repository.add(record)
        key = contributor_key(record.author_name, record.author_email)
        contributor = self.contributors.get(key)
        if contributor is None:
            contributor = ContributorStats(name=key[0], email=key[1])
            self.contributors[key] = contributor
        contributor.add(record)
        self.commits.append(record)
        self.paths.update(record.paths)


def diff_chunk(repo: GitRepository, index: int, chunk: list[CommitDescriptor], diff_fn: DiffFn) -> ChunkResult:
    result = ChunkResult(
        index=index,
        repository=RepositoryStats(path=str(repo.path)),
        contributors={},
        commits=[],
        paths=set(),
        warnings=[],
    )
    for commit in chunk:
        outcome = diff_outcome(repo, commit, diff_fn)
        if outcome.warning is not None:
            result.warnings.append(outcome.warning)
        result.add(CommitRecord.from_changes(commit, outcome.changes))
    return result


def iter_chunks(commits: Iterable[CommitDescriptor], chunk_size: int) -> Iterator[list[CommitDescriptor]]:
    it = iter(commits)
    while True:
        chunk = list(itertools.islice(it, chunk_size))
        if not chunk:
            return
        yield chunk


def merge_chunks(repo_path: str, chunks: list[ChunkResult]) -> AggregationResult:
    """Fold chunk results in chunk-index order, whatever order they finished in."""
    repository = RepositoryStats(path=repo_path)
    contributors: dict[tuple[str, str], ContributorStats] = {}
    commits: list[CommitRecord] = []
    paths: set[str] = set()
    warnings: list[CommitWarning] = []

    for chunk in sorted(chunks, key=lambda c: c.index):
        repository.merge(chunk.repository)
        for key, part in chunk.contributors.items():
            target = contributors.get(key)
            if target is None:
                target = ContributorStats(name=part.name, email=part.email)
                contributors[key] = target
            target.merge(part)
        commits.extend(chunk.commits)
        paths.update(chunk.paths)
        warnings.extend(chunk.warnings)

    repository.files_touched = len(paths)
    return AggregationResult(repository=repository, contributors=contributors, commits=commits, warnings=warnings)


def aggregate_commits(
    repo: GitRepository,
    commits: Iterable[CommitDescriptor],
    *,
    jobs: int | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    diff_fn: DiffFn | None = None,
    progress: ProgressFn | None = None,
) -> AggregationResult:
    if jobs is None:
        jobs = default_jobs()
    if jobs < 1:
        raise ValueError(f"jobs must be >= 1, got {jobs}")
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    fn = diff_fn or compute_diff

    slots: list[ChunkResult | None] = []
    pending: dict[Future[ChunkResult], int] = {}
    max_in_flight = 2 * jobs
    done_chunks = 0
    done_commits = 0

    def collect(return_when: str) -> None:
        nonlocal done_chunks, done_commits
        done, _ = wait(list(pending), return_when=return_when)
        for fut in done:
            index = pending.pop(fut)
            try:
                result = fut.result()
            except Exception as e:
                raise WorkerFailure(index, e) from e
            slots[index] = result
            done_chunks += 1
            done_commits += len(result.commits)
            if progress is not None:
                progress(done_chunks, done_commits)

    with ThreadPoolExecutor(max_workers=jobs) as ex:
        try:
            for index, chunk in enumerate(iter_chunks(commits, chunk_size)):
                slots.append(None)
                pending[ex.submit(diff_chunk, repo, index, chunk, fn)] = index
                if len(pending) >= max_in_flight:
                    collect(FIRST_COMPLETED)
            while pending:
                collect(FIRST_COMPLETED)
        except BaseException:
            # reader failure or crashed worker: drop queued chunks, discard partial results
            ex.shutdown(wait=True, cancel_futures=True)
            raise

    return merge_chunks(str(repo.path), [s for s in slots if s is not None])


def aggregate_history(
    repo: GitRepository,
    date_range: DateRange | None = None,
    *,
    jobs: int | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    diff_fn: DiffFn | None = None,
    progress: ProgressFn | None = None,
) -> AggregationResult:
    source = iter_commits(repo)
    try:
        commits = filter_commits(source, date_range)
        return aggregate_commits(repo, commits, jobs=jobs, chunk_size=chunk_size, diff_fn=diff_fn, progress=progress)
    finally:
        # stops `git log` if aggregation aborted before the history was exhausted
        source.close()
