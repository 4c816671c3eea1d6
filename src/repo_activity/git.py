from __future__ import annotations

import dataclasses
import datetime as dt
import io
import subprocess
import threading
from collections.abc import Iterator
from pathlib import Path

from .errors import RepositoryCorrupt, RepositoryNotFound
from .identity import normalize_email, normalize_name
from .models import CommitDescriptor

# One header line per commit, then the raw message body.
RECORD_SEP = "\x1e"
FIELD_SEP = "\x1f"
LOG_FORMAT = "%x1e%H%x1f%an%x1f%ae%x1f%at%x1f%P%x1f%B"


def run_git(args: list[str], cwd: Path, timeout_s: int = 300) -> tuple[int, str, str]:
    proc = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        timeout=timeout_s,
    )
    return proc.returncode, proc.stdout, proc.stderr


@dataclasses.dataclass(frozen=True)
class GitRepository:
    """
    Read-only handle on a repository. Every access spawns its own `git`
    process, so one handle is safe to share between worker threads.
    """

    path: Path
    git_dir: Path
    bare: bool = False


def open_repository(path: Path | str) -> GitRepository:
    p = Path(path).expanduser()
    if not p.is_dir():
        raise RepositoryNotFound(str(p), "no such directory")
    p = p.resolve()

    try:
        code, out, err = run_git(["rev-parse", "--is-bare-repository", "--absolute-git-dir"], cwd=p)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise RepositoryNotFound(str(p), f"failed to run git: {e}") from e
    if code != 0:
        raise RepositoryNotFound(str(p), err.strip()[:500])
    lines = out.splitlines()
    if len(lines) < 2:
        raise RepositoryNotFound(str(p), "unexpected rev-parse output")
    bare = lines[0].strip() == "true"
    git_dir = Path(lines[1].strip()).resolve()

    if bare:
        if git_dir != p:
            raise RepositoryNotFound(str(p), f"inside bare repository {git_dir}")
        return GitRepository(path=p, git_dir=git_dir, bare=True)

    code, out, err = run_git(["rev-parse", "--show-toplevel"], cwd=p)
    if code != 0:
        raise RepositoryNotFound(str(p), err.strip()[:500])
    toplevel = Path(out.strip()).resolve()
    if toplevel != p:
        raise RepositoryNotFound(str(p), f"inside work tree {toplevel}")
    return GitRepository(path=p, git_dir=git_dir, bare=False)


def _git_path(repo: GitRepository, name: str) -> Path:
    code, out, err = run_git(["rev-parse", "--git-path", name], cwd=repo.path)
    if code != 0:
        raise RepositoryCorrupt(str(repo.path), f"cannot locate {name}: {err.strip()[:500]}")
    p = Path(out.strip())
    return p if p.is_absolute() else repo.path / p


def _ref_is_stored(repo: GitRepository, ref: str) -> bool:
    """True when `ref` exists as a loose ref file or a packed-refs entry, readable or not."""
    if _git_path(repo, ref).exists():
        return True
    packed = _git_path(repo, "packed-refs")
    if not packed.is_file():
        return False
    with packed.open("r", encoding="utf-8", errors="replace") as f:
        for line in f:
            parts = line.split()
            if len(parts) == 2 and parts[1] == ref and not line.startswith(("#", "^")):
                return True
    return False


def head_commit(repo: GitRepository) -> str | None:
    """
    The commit HEAD points at, or None on an unborn branch.

    A HEAD that names a stored ref git cannot resolve, or a detached HEAD
    that is not a commit, is RepositoryCorrupt.
    """
    code, out, err = run_git(["rev-parse", "-q", "--verify", "HEAD^{commit}"], cwd=repo.path)
    if code == 0 and out.strip():
        return out.strip()

    code, ref_out, _ = run_git(["symbolic-ref", "-q", "HEAD"], cwd=repo.path)
    ref = ref_out.strip()
    if code != 0 or not ref:
        raise RepositoryCorrupt(str(repo.path), f"detached HEAD does not resolve to a commit: {err.strip()[:500]}")
    if _ref_is_stored(repo, ref):
        raise RepositoryCorrupt(str(repo.path), f"{ref} does not resolve to a commit: {err.strip()[:500]}")
    # unborn branch: nothing is reachable yet
    return None


def _descriptor(repo: GitRepository, fields: list[str], body: list[str]) -> CommitDescriptor:
    sha, author_name, author_email, authored_s, parents_s = fields
    try:
        authored_at = dt.datetime.fromtimestamp(int(authored_s), tz=dt.timezone.utc)
    except (ValueError, OverflowError, OSError) as e:
        raise RepositoryCorrupt(str(repo.path), f"bad author timestamp {authored_s!r} on {sha}") from e
    return CommitDescriptor(
        sha=sha,
        author_name=normalize_name(author_name),
        author_email=normalize_email(author_email),
        authored_at=authored_at,
        message="\n".join(body).rstrip("\n"),
        parents=tuple(parents_s.split()),
    )


def iter_commits(repo: GitRepository) -> Iterator[CommitDescriptor]:
    """
    Commits reachable from HEAD, children before parents (`--topo-order`).

    The sequence is produced while `git log` is still running and can only
    be consumed once. If git fails part way, RepositoryCorrupt is raised from
    the iterator.
    """
    head = head_commit(repo)
    if head is None:
        return

    cmd = [
        "git",
        "-c",
        "log.showSignature=false",
        "log",
        "--topo-order",
        f"--format={LOG_FORMAT}",
        head,
    ]
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=str(repo.path),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        raise RepositoryCorrupt(str(repo.path), f"failed to start git log: {e}") from e

    assert proc.stdout is not None
    # split on "\n" only: "\r\n" and lone "\r" inside messages are kept as written
    stdout = io.TextIOWrapper(proc.stdout, encoding="utf-8", errors="replace", newline="\n")

    stderr_chunks: list[bytes] = []
    stderr_bytes = 0
    max_stderr_bytes = 50_000

    def drain_stderr() -> None:
        nonlocal stderr_bytes
        if proc.stderr is None:
            return
        while True:
            chunk = proc.stderr.read(8192)
            if not chunk:
                return
            if stderr_bytes >= max_stderr_bytes:
                continue
            take = chunk[: max_stderr_bytes - stderr_bytes]
            stderr_chunks.append(take)
            stderr_bytes += len(take)

    stderr_thread = threading.Thread(target=drain_stderr, daemon=True)
    stderr_thread.start()

    fields: list[str] | None = None
    body: list[str] = []
    try:
        for raw_line in stdout:
            line = raw_line.rstrip("\n")
            if line.startswith(RECORD_SEP):
                if fields is not None:
                    yield _descriptor(repo, fields, body)
                parts = line[1:].split(FIELD_SEP, 5)
                if len(parts) != 6:
                    raise RepositoryCorrupt(str(repo.path), f"unexpected git log record: {line[:80]!r}")
                fields = parts[:5]
                body = [parts[5]]
                continue
            if fields is not None:
                body.append(line)

        code = proc.wait()
        stderr_thread.join()
        if code != 0:
            stderr = b"".join(stderr_chunks).decode("utf-8", errors="replace")
            raise RepositoryCorrupt(str(repo.path), f"git log exited {code}: {stderr.strip()[:500]}")
        if fields is not None:
            yield _descriptor(repo, fields, body)
    finally:
        if proc.poll() is None:
            proc.kill()
        proc.wait()
        stderr_thread.join()
        stdout.close()
        if proc.stderr is not None:
            proc.stderr.close()
