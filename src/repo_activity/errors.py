from __future__ import annotations


class ActivityError(Exception):
    """Base class for errors that end a run."""


class RepositoryNotFound(ActivityError):
    def __init__(self, path: str, detail: str = "") -> None:
        self.path = path
        self.detail = detail
        msg = f"not a git repository: {path}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


class RepositoryCorrupt(ActivityError):
    def __init__(self, path: str, detail: str = "") -> None:
        self.path = path
        self.detail = detail
        msg = f"cannot read repository objects: {path}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class DiffComputationError(Exception):
    """
    Per-commit failure. The aggregator records the commit with zero deltas and
    turns this into a warning instead of ending the run.
    """

    def __init__(self, sha: str, detail: str) -> None:
        self.sha = sha
        self.detail = detail
        super().__init__(f"{sha}: {detail}")


class PersistenceError(ActivityError):
    pass


class WorkerFailure(ActivityError):
    def __init__(self, chunk_index: int, cause: BaseException) -> None:
        self.chunk_index = chunk_index
        self.cause = cause
        super().__init__(f"worker crashed on chunk {chunk_index}: {type(cause).__name__}: {cause}")
